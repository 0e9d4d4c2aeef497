from dataclasses import dataclass
import logging
from pathlib import Path
import time

from idledger.classifier import classify_row
from idledger.config import Settings
from idledger.errors import InputError
from idledger.reports import write_error_log, write_summary
from idledger.schemas import BatchResult, BatchWarning, IdentifierKind, Record
from idledger.session_store import SessionStore


logger = logging.getLogger(__name__)

DELIMITER = ","


@dataclass(frozen=True)
class ColumnLayout:
    name: int | None
    isin: int | None
    cusip: int | None
    sedol: int | None
    lei: int | None


def _index_of(headers: list[str], column: str) -> int | None:
    return headers.index(column) if column in headers else None


def resolve_columns(header_line: str) -> ColumnLayout:
    headers = [header.strip().lower() for header in header_line.split(DELIMITER)]
    name_index = _index_of(headers, "name")
    if name_index is None:
        name_index = _index_of(headers, "entity")
    return ColumnLayout(
        name=name_index,
        isin=_index_of(headers, IdentifierKind.ISIN.column),
        cusip=_index_of(headers, IdentifierKind.CUSIP.column),
        sedol=_index_of(headers, IdentifierKind.SEDOL.column),
        lei=_index_of(headers, IdentifierKind.LEI.column),
    )


def _field(values: list[str], index: int | None) -> str:
    if index is None or index >= len(values):
        return ""
    return values[index]


def parse_row(line: str, row_number: int, layout: ColumnLayout) -> Record:
    # Plain split: quoted fields and escaped delimiters are not supported.
    values = [value.strip() for value in line.split(DELIMITER)]
    entity_name = _field(values, layout.name) if layout.name is not None else f"Row {row_number}"
    return classify_row(
        row_number,
        entity_name,
        isin=_field(values, layout.isin),
        cusip=_field(values, layout.cusip),
        sedol=_field(values, layout.sedol),
        lei=_field(values, layout.lei),
    )


def summarize(
    records: list[Record],
    *,
    elapsed_seconds: float | None = None,
) -> BatchResult:
    valid_records = [record for record in records if not record.errors]
    error_records = [record for record in records if record.errors]
    warnings = [
        BatchWarning(row_number=record.row_number, entity_name=record.entity_name, message=message)
        for record in records
        for message in record.warnings
    ]

    records_per_second: float | None = None
    if elapsed_seconds is not None and elapsed_seconds > 0:
        records_per_second = len(records) / elapsed_seconds

    return BatchResult(
        total=len(records),
        valid_count=len(valid_records),
        error_count=len(error_records),
        warning_count=len(warnings),
        valid_records=valid_records,
        error_records=error_records,
        warnings=warnings,
        isin_count=sum(1 for record in records if record.isin),
        cusip_count=sum(1 for record in records if record.cusip),
        sedol_count=sum(1 for record in records if record.sedol),
        lei_count=sum(1 for record in records if record.lei),
        elapsed_seconds=elapsed_seconds,
        records_per_second=records_per_second,
    )


def process(raw_text: str) -> BatchResult:
    started = time.perf_counter()
    lines = [line for line in raw_text.split("\n") if line.strip()]
    if not lines:
        raise InputError("input contains no data")

    layout = resolve_columns(lines[0])
    # Row numbers count the header as line 1.
    records = [parse_row(line, index + 1, layout) for index, line in enumerate(lines) if index > 0]

    result = summarize(records, elapsed_seconds=time.perf_counter() - started)
    logger.info(
        "batch processed",
        extra={
            "total": result.total,
            "valid": result.valid_count,
            "errors": result.error_count,
            "warnings": result.warning_count,
        },
    )
    return result


def process_file(path: Path) -> BatchResult:
    if not path.exists():
        raise InputError(f"input file not found: {path}")
    return process(path.read_text(encoding="utf-8-sig"))


def filter_records(
    result: BatchResult,
    *,
    search: str = "",
    status: str = "all",
    sort_by: str = "row",
) -> list[Record]:
    needle = search.lower()
    matches: list[Record] = []
    for record in result.records:
        if needle and not (
            needle in record.entity_name.lower() or needle in record.isin.lower() or needle in record.cusip.lower()
        ):
            continue
        if status == "errors" and not record.errors:
            continue
        if status == "valid" and record.errors:
            continue
        matches.append(record)

    if sort_by == "errors":
        matches.sort(key=lambda record: len(record.errors), reverse=True)
    elif sort_by == "name":
        matches.sort(key=lambda record: record.entity_name)
    else:
        matches.sort(key=lambda record: record.row_number)
    return matches


@dataclass(frozen=True)
class RunOutcome:
    result: BatchResult
    session_id: int | None
    error_log_path: str | None
    summary_path: str | None


class BatchRunner:
    def __init__(self, settings: Settings, store: SessionStore) -> None:
        self.settings = settings
        self.store = store

    def run(
        self,
        input_path: Path,
        *,
        session_name: str | None = None,
        write_reports: bool = False,
    ) -> RunOutcome:
        logger.info("validating file", extra={"input_path": str(input_path)})
        result = process_file(input_path)

        error_log_path: str | None = None
        summary_path: str | None = None
        if write_reports:
            error_log_path, summary_path = self._publish_outputs(input_path.stem, result)

        session_id: int | None = None
        if session_name is not None:
            session_id = self.store.save(session_name, input_path.name, result)
            logger.info("session saved", extra={"session_id": session_id, "session_name": session_name})

        return RunOutcome(
            result=result,
            session_id=session_id,
            error_log_path=error_log_path,
            summary_path=summary_path,
        )

    def _publish_outputs(self, stem: str, result: BatchResult) -> tuple[str, str]:
        output_root = Path(self.settings.output_dir)
        error_log_path = output_root / "error-logs" / f"{stem}.csv"
        summary_path = output_root / "reports" / f"{stem}.json"

        write_error_log(error_log_path, result)
        write_summary(summary_path, result)
        return str(error_log_path), str(summary_path)
