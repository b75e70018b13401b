# Overview: Persistence contract for the order ledger and its cached aggregates.

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date

from ..records import (
    Granularity,
    PaymentBucket,
    PaymentType,
    ProductAggregate,
    Transaction,
    TransactionFilter,
    UploadedFileRecord,
)


class PersistenceError(RuntimeError):
    """Raised when the storage backend fails; ingestion cannot continue."""


class DuplicateTransactionError(ValueError):
    """Raised when the backend rejects an append whose dedup key already exists."""


class RejectedRowError(ValueError):
    """Raised when the backend refuses a row's values (width, precision); only that row is lost."""


class SalesRepository(ABC):
    """
    Ledger store + aggregate store behind one interface.

    Invariants:
    - Transactions are append-only; only clear_all() removes them.
    - Aggregates are derived from the ledger: apply_to_aggregates() is called
      exactly once per appended transaction, reset_aggregates() + replay
      rebuilds them, clear_all() wipes them together with the ledger.
    - Every mutation happens inside write_section(), which serializes writers
      so that a dedup check and the following append are one critical section.
    - Users are not part of this store and survive clear_all().
    """

    backend_name = "abstract"

    @abstractmethod
    def write_section(self) -> AbstractContextManager[None]:
        """Exclusive section for check-then-append; commits on clean exit."""

    # Ledger
    @abstractmethod
    def append_transaction(self, txn: Transaction) -> Transaction:
        ...

    @abstractmethod
    def transaction_exists(self, order_number: str, check_number: str, operation_date: date) -> bool:
        ...

    @abstractmethod
    def list_transactions(self, filters: TransactionFilter | None = None) -> list[Transaction]:
        ...

    @abstractmethod
    def count_transactions(self) -> int:
        ...

    # Aggregates
    @abstractmethod
    def apply_to_aggregates(self, txn: Transaction) -> None:
        """Add one newly appended transaction to its year/month/day/product buckets."""

    @abstractmethod
    def get_bucket(self, granularity: Granularity, period_key: str) -> dict[PaymentType, PaymentBucket]:
        ...

    @abstractmethod
    def list_buckets(self, granularity: Granularity) -> dict[str, dict[PaymentType, PaymentBucket]]:
        ...

    @abstractmethod
    def get_product_summary(self) -> list[ProductAggregate]:
        ...

    @abstractmethod
    def reset_aggregates(self) -> None:
        """Drop every cached aggregate (ledger untouched). Call inside write_section()."""

    # Upload history
    @abstractmethod
    def record_upload(self, record: UploadedFileRecord) -> UploadedFileRecord:
        ...

    @abstractmethod
    def list_uploads(self) -> list[UploadedFileRecord]:
        ...

    # Maintenance
    @abstractmethod
    def clear_all(self) -> None:
        """Atomically wipe transactions, aggregates and upload history."""
