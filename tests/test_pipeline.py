from pathlib import Path

import pytest

from idledger.classifier import classify_row
from idledger.errors import InputError
from idledger.pipeline import filter_records, process, process_file
from idledger.reports import render_error_log
from idledger.schemas import IdentifierKind, RecordStatus


def test_single_corrected_isin_row() -> None:
    result = process("name,isin\nAcme,US0378331004")

    assert result.total == 1
    assert result.valid_count == 0
    assert result.error_count == 1
    assert result.warning_count == 1
    assert "ISIN corrected" in result.warnings[0].message
    assert result.warnings[0].row_number == 2
    assert result.warnings[0].entity_name == "Acme"


def test_classifier_collects_every_field() -> None:
    record = classify_row(7, "Mixed", isin="XX12", cusip="037833101", sedol="0263494")

    assert record.status == RecordStatus.ERROR
    assert [error.field for error in record.errors] == [IdentifierKind.ISIN, IdentifierKind.CUSIP]
    assert record.corrected == {IdentifierKind.CUSIP: "037833100"}
    assert record.warnings == ["CUSIP corrected: 037833101 → 037833100"]
    assert record.metadata == {IdentifierKind.SEDOL: {}}


def test_sample_batch_partition_and_counts(sample_text: str) -> None:
    result = process(sample_text)

    assert result.total == 4
    assert result.valid_count == 2
    assert result.error_count == 2
    assert [record.row_number for record in result.valid_records] == [2, 5]
    assert [record.row_number for record in result.error_records] == [3, 4]
    assert (result.isin_count, result.cusip_count, result.sedol_count, result.lei_count) == (4, 3, 1, 1)
    assert result.valid_records[0].metadata[IdentifierKind.ISIN] == {"country_code": "US"}


def test_blank_lines_are_dropped_and_rows_renumbered() -> None:
    result = process("\nisin\n\n  \nUS0378331005\r\nUS5949181045\n")

    assert result.total == 2
    assert [record.row_number for record in result.valid_records] == [2, 3]
    assert result.valid_records[0].entity_name == "Row 2"


def test_entity_column_used_when_name_missing() -> None:
    result = process("Entity , CUSIP\n Apple , 037833100 ")

    assert result.valid_records[0].entity_name == "Apple"
    assert result.valid_records[0].cusip == "037833100"


def test_unknown_columns_are_ignored() -> None:
    result = process("name,ticker\nApple,AAPL")

    assert result.total == 1
    assert result.valid_count == 1
    assert result.isin_count == 0


def test_short_rows_treat_missing_fields_as_absent() -> None:
    result = process("name,isin,lei\nApple")

    assert result.valid_count == 1
    assert result.lei_count == 0


@pytest.mark.parametrize("text", ["", "   \n\n  "])
def test_empty_input_rejected(text: str) -> None:
    with pytest.raises(InputError):
        process(text)


def test_process_file_missing(tmp_path: Path) -> None:
    with pytest.raises(InputError):
        process_file(tmp_path / "missing.csv")


def test_filter_records(sample_text: str) -> None:
    result = process(sample_text)

    errors_only = filter_records(result, status="errors")
    assert [record.entity_name for record in errors_only] == ["Acme Corp", "Broken Ltd"]

    by_search = filter_records(result, search="5949")
    assert [record.entity_name for record in by_search] == ["Microsoft"]

    by_name = filter_records(result, sort_by="name")
    assert [record.entity_name for record in by_name] == ["Acme Corp", "Apple Inc", "Broken Ltd", "Microsoft"]


def test_error_log_export(sample_text: str) -> None:
    result = process(sample_text)

    lines = render_error_log(result).splitlines()

    assert lines[0] == "Row,Entity,Field,Error,Severity,Original Value,Corrected Value"
    assert lines[1] == "3,Acme Corp,ISIN,Invalid checksum,medium,US0378331004,US0378331005"
    assert lines[2] == "4,Broken Ltd,ISIN,Invalid ISIN format,high,XX12,N/A"
    assert len(lines) == 3
