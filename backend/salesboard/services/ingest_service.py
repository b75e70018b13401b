# Overview: Service-layer orchestration of spreadsheet ingestion into the ledger and aggregates.

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, BinaryIO, Callable, Mapping, Sequence

from ..models.auth import ROLE_ADMIN
from ..records import IngestionStats, UploadedFileRecord
from ..repositories.base import DuplicateTransactionError, PersistenceError, RejectedRowError, SalesRepository
from salesboard.time_utils import utcnow
from .dedup_service import DeduplicationGate
from .row_parser import DATE_POLICIES, DATE_POLICY_TODAY, parse_row
from .workbook_reader import StructuralError, read_sheet_rows


logger = logging.getLogger(__name__)


class AuthorizationError(PermissionError):
    """Raised when the caller may not ingest files."""


class IngestionFailed(RuntimeError):
    """
    Raised when storage fails mid-run.

    Rows appended before the failure stay committed; stats holds what was
    processed up to row_index.
    """

    def __init__(self, message: str, stats: IngestionStats, row_index: int | None):
        super().__init__(message)
        self.stats = stats
        self.row_index = row_index


def ingest_options(config: Mapping[str, Any]) -> dict[str, Any]:
    """Pipeline options from Flask config."""
    return {
        "date_policy": config.get("DATE_FALLBACK", DATE_POLICY_TODAY),
        "max_rows": int(config.get("INGEST_MAX_ROWS") or 0),
        "max_seconds": float(config.get("INGEST_MAX_SECONDS") or 0),
    }


def _require_admin(uploader_role: str | None) -> None:
    if uploader_role != ROLE_ADMIN:
        raise AuthorizationError("Administrator role required to upload files")


def ingest_rows(
    rows: Sequence[Sequence[Any]],
    *,
    file_name: str,
    file_size: int,
    uploader_id: int | None,
    uploader_role: str | None,
    repository: SalesRepository,
    date_policy: str = DATE_POLICY_TODAY,
    max_rows: int = 0,
    max_seconds: float = 0,
    clock: Callable[[], float] = time.monotonic,
) -> IngestionStats:
    """
    Ingest spreadsheet rows (row 0 is the header) in file order.

    Per row: parse -> dedup check -> append -> aggregate update. Row failures
    are counted and skipped; storage failures raise IngestionFailed. One
    UploadedFile record with the final stats is written after the last row.
    max_rows / max_seconds (0 = unlimited) stop the run early with
    stats.truncated set.
    """
    _require_admin(uploader_role)
    if date_policy not in DATE_POLICIES:
        raise ValueError(f"Unsupported date policy: {date_policy}")
    if len(rows) < 2 or not any(rows[1:]):
        raise StructuralError("File contains no data rows")

    file_id = uuid.uuid4().hex
    uploaded_at = utcnow()
    stats = IngestionStats(file_id=file_id)
    gate = DeduplicationGate(repository)
    started = clock()

    logger.info(
        "Ingesting %s (%d bytes, %d rows) for user %s into %s ledger",
        file_name, file_size, len(rows) - 1, uploader_id, repository.backend_name,
    )

    for row_index in range(1, len(rows)):
        if max_rows and stats.total >= max_rows:
            stats.truncated = True
            logger.warning("Row ceiling %d reached at row %d of %s", max_rows, row_index, file_name)
            break
        if max_seconds and clock() - started >= max_seconds:
            stats.truncated = True
            logger.warning("Time ceiling %ss reached at row %d of %s", max_seconds, row_index, file_name)
            break

        try:
            txn = parse_row(
                rows[row_index],
                row_index,
                file_id=file_id,
                uploaded_by=uploader_id,
                uploaded_at=uploaded_at,
                date_policy=date_policy,
            )
        except Exception as exc:  # noqa: BLE001
            stats.total += 1
            stats.errors += 1
            stats.error_rows.append(row_index)
            logger.warning("Skipping row %d of %s: %s", row_index, file_name, exc)
            continue

        if txn is None:
            stats.skipped += 1
            continue
        stats.total += 1

        try:
            with repository.write_section():
                duplicate = gate.is_duplicate(txn)
                if not duplicate:
                    stored = repository.append_transaction(txn)
                    repository.apply_to_aggregates(stored)
        except DuplicateTransactionError:
            duplicate = True
        except RejectedRowError as exc:
            stats.errors += 1
            stats.error_rows.append(row_index)
            logger.warning("Storage rejected row %d of %s: %s", row_index, file_name, exc)
            continue
        except PersistenceError as exc:
            logger.error("Storage failure at row %d of %s: %s", row_index, file_name, exc)
            raise IngestionFailed(f"Storage failure at row {row_index}: {exc}", stats, row_index) from exc
        except Exception as exc:  # noqa: BLE001
            stats.errors += 1
            stats.error_rows.append(row_index)
            logger.warning("Failed to store row %d of %s: %s", row_index, file_name, exc)
            continue

        if duplicate:
            stats.duplicate += 1
        else:
            stats.new += 1

    record = UploadedFileRecord(
        file_id=file_id,
        file_name=file_name,
        size=file_size,
        uploaded_by=uploader_id,
        upload_date=uploaded_at,
        records_total=stats.total,
        records_new=stats.new,
        records_updated=stats.updated,
        records_duplicate=stats.duplicate,
        records_errors=stats.errors,
        truncated=stats.truncated,
    )
    try:
        with repository.write_section():
            repository.record_upload(record)
    except (PersistenceError, DuplicateTransactionError) as exc:
        logger.error("Failed to record upload %s: %s", file_name, exc)
        raise IngestionFailed(f"Failed to record upload: {exc}", stats, None) from exc

    logger.info("Finished %s: %s", file_name, stats.to_dict())
    return stats


def ingest_upload(
    stream: BinaryIO | bytes,
    *,
    file_name: str,
    file_size: int | None = None,
    uploader_id: int | None,
    uploader_role: str | None,
    repository: SalesRepository,
    **options: Any,
) -> IngestionStats:
    """Read the first sheet of an uploaded workbook and ingest it."""
    _require_admin(uploader_role)
    data = stream if isinstance(stream, bytes) else stream.read()
    rows = read_sheet_rows(data, file_name)
    return ingest_rows(
        rows,
        file_name=file_name,
        file_size=file_size if file_size is not None else len(data),
        uploader_id=uploader_id,
        uploader_role=uploader_role,
        repository=repository,
        **options,
    )
