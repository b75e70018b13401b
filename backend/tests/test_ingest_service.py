from decimal import Decimal
from itertools import count

import pytest
from sqlalchemy import event
from sqlalchemy.exc import DataError

from salesboard.extensions import db
from salesboard.models import ROLE_ACCOUNTANT, ROLE_ADMIN, Order
from salesboard.records import Granularity, PaymentType
from salesboard.repositories import PersistenceError, RejectedRowError
from salesboard.services.ingest_service import (
    AuthorizationError,
    IngestionFailed,
    ingest_rows,
    ingest_upload,
)
from salesboard.services.row_parser import DATE_POLICY_REJECT
from salesboard.services.workbook_reader import StructuralError, WorkbookError

from factories import HEADER, build_xlsx, make_row


SALE_ROW = ["O1", "C1", "Widget", "Red", "Cash", 2, "pcs", 10, 0, 0, 20, "12:00", "2024-03-15", "K1"]


def run(repository, rows, uploader_id=1, role=ROLE_ADMIN, **options):
    return ingest_rows(
        [HEADER] + rows,
        file_name="sales.xlsx",
        file_size=1024,
        uploader_id=uploader_id,
        uploader_role=role,
        repository=repository,
        **options,
    )


def ten_rows():
    return [make_row(order=f"O{i}", check=f"C{i}", date=f"2024-03-{i + 1:02d}") for i in range(10)]


class TestSingleSale:
    def test_single_sale(self, repository):
        stats = run(repository, [SALE_ROW])

        assert (stats.total, stats.new, stats.duplicate, stats.errors) == (1, 1, 0, 0)
        [txn] = repository.list_transactions()
        assert txn.payment_type == PaymentType.CASH
        assert txn.total_amount == Decimal("20")
        assert txn.is_return is False
        assert (txn.year, txn.month, txn.day) == (2024, 3, 15)

    def test_single_return(self, repository):
        row = list(SALE_ROW)
        row[10] = -20
        run(repository, [row])

        [txn] = repository.list_transactions()
        assert txn.payment_type == PaymentType.RETURN
        assert txn.total_amount == Decimal("20")
        assert txn.is_return is True

    def test_reingesting_same_row_is_a_duplicate(self, repository):
        run(repository, [SALE_ROW])
        stats = run(repository, [SALE_ROW])

        assert stats.new == 0
        assert stats.duplicate == 1
        assert repository.count_transactions() == 1


class TestDeduplication:
    def test_same_file_twice(self, repository):
        rows = ten_rows()
        first = run(repository, rows)
        second = run(repository, rows)

        assert first.new == 10
        assert second.new == 0
        assert second.duplicate == first.new
        assert repository.count_transactions() == 10

    def test_duplicate_within_one_file(self, repository):
        stats = run(repository, [make_row(), make_row(total=999)])
        assert (stats.new, stats.duplicate) == (1, 1)
        [txn] = repository.list_transactions()
        assert txn.total_amount == Decimal("10")

    def test_key_differs_by_date(self, repository):
        stats = run(repository, [make_row(date="2024-03-15"), make_row(date="2024-03-16")])
        assert stats.new == 2

    def test_duplicates_do_not_touch_aggregates(self, repository):
        run(repository, [make_row(total=50)])
        run(repository, [make_row(total=50)])
        bucket = repository.get_bucket(Granularity.YEAR, "2024")
        assert bucket[PaymentType.CASH].count == 1
        assert bucket[PaymentType.CASH].sum == Decimal("50")


class TestRowIsolation:
    def test_short_row_does_not_abort_batch(self, repository):
        rows = ten_rows()
        rows[4] = rows[4][:12]
        stats = run(repository, rows)

        assert stats.new == 9
        assert stats.skipped == 1
        assert stats.errors == 0
        assert repository.count_transactions() == 9

    def test_rejected_date_counts_as_error(self, repository):
        rows = ten_rows()
        rows[2] = make_row(order="BAD", date="31.31.2024")
        stats = run(repository, rows, date_policy=DATE_POLICY_REJECT)

        assert stats.errors == 1
        assert stats.error_rows == [3]
        assert stats.new == 9
        assert stats.total == 10

    def test_unexpected_parse_failure_is_counted(self, repository, monkeypatch):
        from salesboard.services import ingest_service

        real_parse = ingest_service.parse_row

        def flaky(row, row_index, **kwargs):
            if row_index == 2:
                raise TypeError("boom")
            return real_parse(row, row_index, **kwargs)

        monkeypatch.setattr(ingest_service, "parse_row", flaky)
        stats = run(repository, ten_rows()[:3])

        assert stats.errors == 1
        assert stats.new == 2

    def test_unreadable_date_falls_back_by_default(self, repository):
        stats = run(repository, [make_row(date="someday")])
        assert stats.new == 1
        assert stats.errors == 0

    def test_over_long_cell_counts_as_error(self, repository):
        rows = ten_rows()
        rows[3] = make_row(order="LONG", time="x" * 40)
        stats = run(repository, rows)

        assert stats.errors == 1
        assert stats.error_rows == [4]
        assert stats.new == 9
        assert repository.count_transactions() == 9
        assert len(repository.list_uploads()) == 1

    def test_backend_rejected_row_counts_as_error(self, repository, monkeypatch):
        real_append = repository.append_transaction
        calls = count(1)

        def rejecting_append(txn):
            if next(calls) == 3:
                raise RejectedRowError("value too long")
            return real_append(txn)

        monkeypatch.setattr(repository, "append_transaction", rejecting_append)
        stats = run(repository, ten_rows())

        assert stats.errors == 1
        assert stats.error_rows == [3]
        assert stats.new == 9
        assert repository.count_transactions() == 9
        assert repository.get_bucket(Granularity.YEAR, "2024")[PaymentType.CASH].count == 9

    def test_database_data_error_is_row_level(self, repository):
        if repository.backend_name != "sql":
            pytest.skip("database-only failure")

        session = db.session()

        def reject_o3(flush_session, flush_context, instances):
            if any(isinstance(obj, Order) and obj.order_number == "O3" for obj in flush_session.new):
                raise DataError("INSERT INTO orders", None, Exception("value too long for type character varying(32)"))

        event.listen(session, "before_flush", reject_o3)
        try:
            stats = run(repository, ten_rows())
        finally:
            event.remove(session, "before_flush", reject_o3)

        assert stats.errors == 1
        assert stats.new == 9
        assert repository.count_transactions() == 9
        assert [t.order_number for t in repository.list_transactions()].count("O3") == 0


class TestBatchFailures:
    def test_non_admin_is_rejected_before_any_row(self, repository):
        with pytest.raises(AuthorizationError):
            run(repository, ten_rows(), role=ROLE_ACCOUNTANT)
        assert repository.count_transactions() == 0
        assert repository.list_uploads() == []

    @pytest.mark.parametrize("rows", [[], [[], []]])
    def test_no_data_rows_is_structural(self, repository, rows):
        with pytest.raises(StructuralError):
            run(repository, rows)
        assert repository.list_uploads() == []

    def test_header_only(self, repository):
        with pytest.raises(StructuralError):
            ingest_rows(
                [HEADER],
                file_name="empty.xlsx",
                file_size=10,
                uploader_id=1,
                uploader_role=ROLE_ADMIN,
                repository=repository,
            )

    def test_unknown_date_policy(self, repository):
        with pytest.raises(ValueError):
            run(repository, ten_rows(), date_policy="yesterday")

    def test_persistence_failure_keeps_committed_rows(self, repository, monkeypatch):
        real_append = repository.append_transaction
        calls = count(1)

        def failing_append(txn):
            if next(calls) == 3:
                raise PersistenceError("connection lost")
            return real_append(txn)

        monkeypatch.setattr(repository, "append_transaction", failing_append)

        with pytest.raises(IngestionFailed) as exc_info:
            run(repository, ten_rows())

        assert exc_info.value.row_index == 3
        assert exc_info.value.stats.new == 2
        assert repository.count_transactions() == 2
        assert repository.list_uploads() == []


class TestCeilings:
    def test_row_ceiling_truncates(self, repository):
        stats = run(repository, ten_rows(), max_rows=4)

        assert stats.truncated is True
        assert stats.total == 4
        assert stats.new == 4
        assert "re-upload" in stats.summary_message()
        [upload] = repository.list_uploads()
        assert upload.truncated is True
        assert upload.records_new == 4

    def test_time_ceiling_truncates(self, repository):
        ticks = count()
        stats = run(repository, ten_rows(), max_seconds=3, clock=lambda: next(ticks))

        assert stats.truncated is True
        assert 0 < stats.new < 10

    def test_truncated_file_can_be_resumed(self, repository):
        run(repository, ten_rows(), max_rows=4)
        stats = run(repository, ten_rows())
        assert (stats.new, stats.duplicate) == (6, 4)


class TestUploadRecord:
    def test_upload_stamped_with_final_stats(self, repository, admin_user):
        rows = ten_rows()[:3] + [make_row(order="O0", check="C0", date="2024-03-01")]
        stats = run(repository, rows, uploader_id=admin_user.id)

        [upload] = repository.list_uploads()
        assert upload.file_id == stats.file_id
        assert upload.file_name == "sales.xlsx"
        assert upload.size == 1024
        assert upload.uploaded_by == admin_user.id
        assert (upload.records_total, upload.records_new, upload.records_duplicate) == (4, 3, 1)
        assert all(t.file_id == stats.file_id for t in repository.list_transactions())

    def test_aggregates_follow_ingest(self, repository):
        run(repository, [
            make_row(order="A", total=100, payment="Наличные", date="2024-03-15"),
            make_row(order="B", total=50, payment="Карта", date="2024-03-16"),
            make_row(order="C", total=-30, payment="Карта", date="2024-04-01"),
        ])

        year = repository.get_bucket(Granularity.YEAR, "2024")
        assert year[PaymentType.CASH].sum == Decimal("100")
        assert year[PaymentType.CARD].sum == Decimal("50")
        assert year[PaymentType.RETURN].count == 1
        assert year[PaymentType.RETURN].sum == Decimal("30")
        assert repository.get_bucket(Granularity.MONTH, "2024-03")[PaymentType.CASH].count == 1
        assert repository.get_bucket(Granularity.DAY, "2024-04-01")[PaymentType.RETURN].count == 1

        [product] = repository.get_product_summary()
        assert (product.sales, product.returns) == (2, 1)
        assert product.revenue == Decimal("150")
        assert product.return_amount == Decimal("30")

    def test_stored_amounts_are_never_negative(self, repository):
        rows = [make_row(order=str(i), total=t, payment=p) for i, (t, p) in enumerate(
            [(10, "Наличные"), (-10, "Наличные"), (5, "Возврат"), (0, "QR"), (-1, "VIP")]
        )]
        run(repository, rows)

        for txn in repository.list_transactions():
            assert txn.total_amount >= 0
            assert txn.is_return == (txn.payment_type == PaymentType.RETURN)


class TestIngestUpload:
    def test_xlsx_bytes(self, repository):
        data = build_xlsx([make_row(order="X1"), [], make_row(order="X2")])
        stats = ingest_upload(
            data,
            file_name="march.xlsx",
            uploader_id=1,
            uploader_role=ROLE_ADMIN,
            repository=repository,
        )

        assert stats.new == 2
        assert stats.skipped == 1
        [upload] = repository.list_uploads()
        assert upload.size == len(data)

    def test_garbage_file(self, repository):
        with pytest.raises(WorkbookError):
            ingest_upload(
                b"definitely not a spreadsheet",
                file_name="sales.xlsx",
                uploader_id=1,
                uploader_role=ROLE_ADMIN,
                repository=repository,
            )
        assert repository.list_uploads() == []

    def test_wrong_extension(self, repository):
        with pytest.raises(WorkbookError):
            ingest_upload(b"a,b,c", file_name="sales.csv", uploader_id=1, uploader_role=ROLE_ADMIN, repository=repository)

    def test_non_admin_rejected_before_reading(self, repository):
        with pytest.raises(AuthorizationError):
            ingest_upload(b"junk", file_name="x.xlsx", uploader_id=1, uploader_role=ROLE_ACCOUNTANT, repository=repository)
