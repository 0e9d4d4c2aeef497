import csv
import io
import json
from pathlib import Path

from idledger.schemas import BatchResult


ERROR_LOG_HEADER = ["Row", "Entity", "Field", "Error", "Severity", "Original Value", "Corrected Value"]


def render_error_log(result: BatchResult) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(ERROR_LOG_HEADER)
    for record in result.error_records:
        for error in record.errors:
            writer.writerow(
                [
                    record.row_number,
                    record.entity_name,
                    error.field.value,
                    error.message,
                    error.severity,
                    record.raw_value(error.field),
                    record.corrected.get(error.field, "N/A"),
                ]
            )
    return buffer.getvalue()


def summary_payload(result: BatchResult) -> dict[str, object]:
    return {
        "total": result.total,
        "valid": result.valid_count,
        "errors": result.error_count,
        "warnings": result.warning_count,
        "identifier_counts": {
            "isin": result.isin_count,
            "cusip": result.cusip_count,
            "sedol": result.sedol_count,
            "lei": result.lei_count,
        },
        "elapsed_seconds": result.elapsed_seconds,
        "records_per_second": result.records_per_second,
    }


def write_error_log(path: Path, result: BatchResult) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as outfile:
        outfile.write(render_error_log(result))


def write_summary(path: Path, result: BatchResult) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as outfile:
        json.dump(summary_payload(result), outfile, indent=2, sort_keys=True)
        outfile.write("\n")
