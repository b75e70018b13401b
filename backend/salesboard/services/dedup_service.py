# Overview: Duplicate detection against the durable ledger.

from __future__ import annotations

from ..records import Transaction
from ..repositories.base import SalesRepository


class DeduplicationGate:
    """
    Exact-match duplicate check on (order_number, check_number, operation_date).

    A re-uploaded row that only differs in amount is still a duplicate and is
    dropped; corrections need a wipe and a fresh upload.
    Call is_duplicate() inside repository.write_section() together with the
    append, or two concurrent uploads can both pass the check.
    """

    def __init__(self, repository: SalesRepository):
        self.repository = repository

    def is_duplicate(self, candidate: Transaction) -> bool:
        order_number, check_number, operation_date = candidate.dedup_key
        return self.repository.transaction_exists(order_number, check_number, operation_date)
