# Overview: Process-local repository for tests and single-process deployments.

from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Iterator

from ..records import (
    Granularity,
    PaymentBucket,
    PaymentType,
    ProductAggregate,
    Transaction,
    TransactionFilter,
    UploadedFileRecord,
    empty_payment_map,
    period_keys,
)
from .base import DuplicateTransactionError, SalesRepository


logger = logging.getLogger(__name__)


class MemoryRepository(SalesRepository):
    """
    Dict-backed ledger and aggregates guarded by one re-entrant lock.

    Readers take the lock too, so a clear is never observed half-done.
    """

    backend_name = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._reset_state()

    def _reset_state(self) -> None:
        self._transactions: list[Transaction] = []
        self._keys: set[tuple[str, str, date]] = set()
        self._buckets: dict[Granularity, dict[str, dict[PaymentType, PaymentBucket]]] = {
            granularity: {} for granularity in Granularity
        }
        self._products: dict[tuple[str, str], ProductAggregate] = {}
        self._uploads: list[UploadedFileRecord] = []

    @contextmanager
    def write_section(self) -> Iterator[None]:
        with self._lock:
            yield

    def append_transaction(self, txn: Transaction) -> Transaction:
        with self._lock:
            if txn.dedup_key in self._keys:
                raise DuplicateTransactionError(f"Transaction {txn.dedup_key!r} already exists")
            stored = copy.copy(txn)
            stored.id = len(self._transactions) + 1
            self._transactions.append(stored)
            self._keys.add(stored.dedup_key)
            return copy.copy(stored)

    def transaction_exists(self, order_number: str, check_number: str, operation_date: date) -> bool:
        with self._lock:
            return (order_number, check_number, operation_date) in self._keys

    def list_transactions(self, filters: TransactionFilter | None = None) -> list[Transaction]:
        filters = filters or TransactionFilter()
        with self._lock:
            return [copy.copy(txn) for txn in self._transactions if filters.matches(txn)]

    def count_transactions(self) -> int:
        with self._lock:
            return len(self._transactions)

    def apply_to_aggregates(self, txn: Transaction) -> None:
        with self._lock:
            for granularity, key in period_keys(txn.operation_date).items():
                buckets = self._buckets[granularity].setdefault(key, empty_payment_map())
                buckets[txn.payment_type].add(txn.total_amount)

            product = self._products.get(txn.product_key)
            if product is None:
                product = ProductAggregate(
                    product_name=txn.product_name,
                    product_variant=txn.product_variant,
                    product_code=txn.product_code,
                )
                self._products[txn.product_key] = product
            product.apply(txn)

    def get_bucket(self, granularity: Granularity, period_key: str) -> dict[PaymentType, PaymentBucket]:
        with self._lock:
            buckets = self._buckets[granularity].get(period_key)
            return copy.deepcopy(buckets) if buckets else empty_payment_map()

    def list_buckets(self, granularity: Granularity) -> dict[str, dict[PaymentType, PaymentBucket]]:
        with self._lock:
            return copy.deepcopy(dict(sorted(self._buckets[granularity].items())))

    def get_product_summary(self) -> list[ProductAggregate]:
        with self._lock:
            return [copy.copy(p) for _, p in sorted(self._products.items())]

    def reset_aggregates(self) -> None:
        with self._lock:
            self._buckets = {granularity: {} for granularity in Granularity}
            self._products = {}

    def record_upload(self, record: UploadedFileRecord) -> UploadedFileRecord:
        with self._lock:
            stored = copy.copy(record)
            stored.id = len(self._uploads) + 1
            self._uploads.append(stored)
            return copy.copy(stored)

    def list_uploads(self) -> list[UploadedFileRecord]:
        with self._lock:
            return [copy.copy(r) for r in reversed(self._uploads)]

    def clear_all(self) -> None:
        with self._lock:
            removed = len(self._transactions)
            self._reset_state()
        logger.info("Memory ledger cleared (%d transactions removed)", removed)
