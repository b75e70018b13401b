import io
from decimal import Decimal

import pytest
from openpyxl import load_workbook

from salesboard.models import ROLE_ADMIN
from salesboard.records import Granularity, PaymentType
from salesboard.services import auth_service, export_service, reporting_service
from salesboard.services.ingest_service import ingest_rows
from salesboard.services.reporting_service import ReportError, parse_period_key

from factories import HEADER, PASSWORD, make_row


def ingest(repository, rows, uploader_id=None):
    return ingest_rows(
        [HEADER] + rows,
        file_name="sales.xlsx",
        file_size=100,
        uploader_id=uploader_id,
        uploader_role=ROLE_ADMIN,
        repository=repository,
    )


def mixed_rows():
    return [
        make_row(order="1", date="2023-12-31", total=70, payment="Наличные"),
        make_row(order="2", date="2024-01-10", total=100, payment="Наличные"),
        make_row(order="3", date="2024-01-10", total=40, payment="QR"),
        make_row(order="4", date="2024-01-22", total=25, payment="VIP", product="Cola", variant="Lime"),
        make_row(order="5", date="2024-02-01", total=60, payment="Карта"),
        make_row(order="6", date="2024-02-01", total=-15, payment="Карта", product="Cola", variant="Lime"),
        make_row(order="7", date="2024-03-15", total=5, payment="Бартер"),
    ]


class TestPeriodKeys:
    @pytest.mark.parametrize(
        "key,granularity,aggregate_key",
        [
            ("2024", Granularity.YEAR, "2024"),
            ("2024_03", Granularity.MONTH, "2024-03"),
            ("2024-3", Granularity.MONTH, "2024-03"),
            ("2024_03_15", Granularity.DAY, "2024-03-15"),
            ("2024-03-15", Granularity.DAY, "2024-03-15"),
        ],
    )
    def test_segments_decide_granularity(self, key, granularity, aggregate_key):
        period = parse_period_key(key)
        assert period.granularity is granularity
        assert period.aggregate_key == aggregate_key

    @pytest.mark.parametrize("key", ["", None, "abc", "2024_13", "2024_02_30", "2024_01_01_01", "2024__01"])
    def test_invalid_keys(self, key):
        with pytest.raises(ReportError):
            parse_period_key(key)


class TestPeriodDetails:
    def test_year_details_after_single_sale(self, repository):
        row = ["O1", "C1", "Widget", "Red", "Cash", 2, "pcs", 10, 0, 0, 20, "12:00", "2024-03-15", "K1"]
        ingest(repository, [row])

        [txn] = reporting_service.get_period_details("2024", "ALL", repository=repository)
        assert (txn.year, txn.month) == (2024, 3)
        assert txn.order_number == "O1"

    def test_month_day_and_type_filters(self, repository):
        ingest(repository, mixed_rows())

        assert len(reporting_service.get_period_details("2024", repository=repository)) == 6
        assert len(reporting_service.get_period_details("2024_01", repository=repository)) == 3
        assert len(reporting_service.get_period_details("2024_01_10", repository=repository)) == 2
        assert len(reporting_service.get_period_details("2024-01-10", "QR", repository=repository)) == 1
        assert len(reporting_service.get_period_details("2024_02", "RETURN", repository=repository)) == 1
        assert reporting_service.get_period_details("2025", repository=repository) == []

    def test_all_periods(self, repository):
        ingest(repository, mixed_rows())
        assert len(reporting_service.get_period_details("all", "CASH", repository=repository)) == 2
        assert len(reporting_service.get_period_details(None, repository=repository)) == 7

    def test_unknown_payment_type(self, repository):
        with pytest.raises(ReportError):
            reporting_service.get_period_details("2024", "BITCOIN", repository=repository)


class TestOrders:
    def test_filters(self, repository):
        ingest(repository, mixed_rows())

        assert len(reporting_service.list_orders(repository=repository)) == 7
        in_january = reporting_service.list_orders(
            repository=repository, start_date="2024-01-01", end_date="2024-01-31"
        )
        assert [t.order_number for t in in_january] == ["2", "3", "4"]
        assert len(reporting_service.list_orders(repository=repository, payment_type="VIP")) == 1
        assert len(reporting_service.list_orders(repository=repository, product="cOLa")) == 2

    def test_product_filter_folds_cyrillic_case(self, repository):
        ingest(repository, [make_row(product="Кофе Латте")])
        assert len(reporting_service.list_orders(repository=repository, product="кофе")) == 1

    @pytest.mark.parametrize(
        "kwargs",
        [{"start_date": "15.01.2024"}, {"start_date": "2024-02-01", "end_date": "2024-01-01"}],
    )
    def test_bad_filters(self, repository, kwargs):
        with pytest.raises(ReportError):
            reporting_service.list_orders(repository=repository, **kwargs)


class TestStatistics:
    def test_totals(self, repository):
        ingest(repository, mixed_rows())
        stats = reporting_service.get_statistics(repository=repository)

        assert stats["total"] == 7
        assert stats["total_revenue"] == 300.0
        assert stats["gross_total"] == 315.0
        assert stats["returns"] == 15.0
        assert stats["returns_count"] == 1
        assert stats["net_revenue"] == 285.0
        assert stats["by_payment_type"]["CASH"] == {"count": 2, "total": 170.0}
        assert stats["by_payment_type"]["UNKNOWN"] == {"count": 1, "total": 5.0}

    def test_empty(self, repository):
        stats = reporting_service.get_statistics(repository=repository)
        assert stats["total"] == 0
        assert stats["total_revenue"] == 0.0
        assert stats["gross_total"] == 0.0

    def test_reports_data(self, repository):
        ingest(repository, mixed_rows())
        data = reporting_service.get_reports_data(repository=repository)

        assert set(data["yearly"]) == {"2023", "2024"}
        assert data["monthly"]["2024-01"]["QR"] == {"count": 1, "total": 40.0}
        assert data["daily"]["2024-02-01"]["RETURN"]["count"] == 1
        cola = next(p for p in data["products"] if p["product_name"] == "Cola")
        assert cola["sales"] == 1
        assert cola["returns"] == 1
        assert cola["net_revenue"] == 10.0


class TestAggregateConsistency:
    def test_parents_equal_sum_of_children(self, repository):
        ingest(repository, mixed_rows())

        years = repository.list_buckets(Granularity.YEAR)
        months = repository.list_buckets(Granularity.MONTH)
        days = repository.list_buckets(Granularity.DAY)

        for year_key, year_buckets in years.items():
            for ptype in PaymentType:
                month_sum = sum(
                    (b[ptype].sum for k, b in months.items() if k.startswith(year_key + "-")),
                    Decimal("0"),
                )
                assert year_buckets[ptype].sum == month_sum
        for month_key, month_buckets in months.items():
            for ptype in PaymentType:
                day_sum = sum(
                    (b[ptype].sum for k, b in days.items() if k.startswith(month_key + "-")),
                    Decimal("0"),
                )
                assert month_buckets[ptype].sum == day_sum

        assert reporting_service.verify_aggregates(repository=repository) == []

    def test_drift_is_detected_and_rebuilt(self, repository):
        ingest(repository, mixed_rows())
        txn = repository.list_transactions()[0]
        with repository.write_section():
            repository.apply_to_aggregates(txn)

        problems = reporting_service.verify_aggregates(repository=repository)
        assert any("differs from ledger re-scan" in p for p in problems)

        assert reporting_service.rebuild_aggregates(repository=repository) == 7
        assert reporting_service.verify_aggregates(repository=repository) == []
        assert reporting_service.get_statistics(repository=repository)["total"] == 7


class TestClear:
    def test_clear_keeps_users(self, repository, admin_user):
        ingest(repository, mixed_rows(), uploader_id=admin_user.id)
        repository.clear_all()

        assert reporting_service.get_statistics(repository=repository)["total"] == 0
        assert repository.list_transactions() == []
        assert repository.list_uploads() == []
        assert repository.get_product_summary() == []
        assert auth_service.authenticate("admin", PASSWORD) is not None

    def test_ingest_after_clear(self, repository):
        ingest(repository, mixed_rows())
        repository.clear_all()
        stats = ingest(repository, mixed_rows())
        assert stats.new == 7


class TestUploadsAndInfo:
    def test_uploads_carry_uploader_name(self, repository, admin_user):
        ingest(repository, mixed_rows()[:2], uploader_id=admin_user.id)
        ingest(repository, mixed_rows()[2:], uploader_id=admin_user.id)

        uploads = reporting_service.list_uploads(repository=repository)
        assert len(uploads) == 2
        assert uploads[0].records_new == 5
        assert all(u.uploaded_by_name == "Admin User" for u in uploads)

    def test_database_info(self, repository, admin_user):
        ingest(repository, mixed_rows())
        info = reporting_service.get_database_info(repository=repository)

        assert info["orders"] == 7
        assert info["files"] == 1
        assert info["users"] == 1
        assert info["years"] == 2
        assert info["first_date"] == "2023-12-31"
        assert info["last_date"] == "2024-03-15"


class TestExport:
    def test_workbook_sheets(self, repository):
        ingest(repository, mixed_rows())
        buffer, filename = export_service.export_report(repository=repository)

        assert filename.endswith(".xlsx")
        wb = load_workbook(io.BytesIO(buffer.getvalue()))
        assert wb.sheetnames == ["Orders", "Yearly", "Monthly"]
        assert wb["Orders"].max_row == 8
        yearly = list(wb["Yearly"].iter_rows(values_only=True))
        assert yearly[0][0] == "Year"
        assert [r[0] for r in yearly[1:]] == ["2023", "2024"]

    def test_export_does_not_mutate_store(self, repository):
        ingest(repository, mixed_rows())
        before = reporting_service.get_reports_data(repository=repository)
        export_service.export_report(repository=repository)
        assert reporting_service.get_reports_data(repository=repository) == before
        assert repository.count_transactions() == 7
