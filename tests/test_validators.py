import pytest

from idledger.schemas import IdentifierKind, Severity
from idledger.validators import (
    lei_check_digits,
    validate,
    validate_cusip,
    validate_isin,
    validate_lei,
    validate_sedol,
)


def test_isin_valid_with_country_code() -> None:
    outcome = validate_isin("US0378331005")

    assert outcome.valid is True
    assert outcome.metadata == {"country_code": "US"}
    assert outcome.corrected_value is None


def test_isin_checksum_failure_is_corrected() -> None:
    outcome = validate_isin("US0378331004")

    assert outcome.valid is False
    assert outcome.error_message == "Invalid checksum"
    assert outcome.severity == Severity.MEDIUM
    assert outcome.corrected_value == "US0378331005"


def test_isin_input_is_trimmed_and_uppercased() -> None:
    assert validate_isin("  us0378331005 ").valid is True


def test_cusip_valid_with_issuer_code() -> None:
    outcome = validate_cusip("037833100")

    assert outcome.valid is True
    assert outcome.metadata == {"issuer_code": "037833"}


def test_cusip_with_letters() -> None:
    assert validate_cusip("38259P508").valid is True

    outcome = validate_cusip("38259P501")
    assert outcome.corrected_value == "38259P508"


def test_sedol_reference_values() -> None:
    assert validate_sedol("0263494").valid is True
    assert validate_sedol("B0YBKJ7").valid is True
    assert validate_sedol("0263494").metadata == {}


def test_sedol_rejects_vowels() -> None:
    outcome = validate_sedol("A263494")

    assert outcome.valid is False
    assert outcome.error_message == "Invalid SEDOL format"
    assert outcome.corrected_value is None


def test_lei_valid_and_lou_code() -> None:
    outcome = validate_lei("529900T8BM49AURSDO55")

    assert outcome.valid is True
    assert outcome.metadata == {"lou_code": "5299"}


def test_lei_check_digits_are_zero_padded_pairs() -> None:
    assert lei_check_digits("529900T8BM49AURSDO") == "55"
    assert lei_check_digits("HWUPKR0MPOU8FGXBT3") == "94"

    outcome = validate_lei("HWUPKR0MPOU8FGXBT300")
    assert outcome.valid is False
    assert outcome.corrected_value == "HWUPKR0MPOU8FGXBT394"


@pytest.mark.parametrize(
    ("kind", "raw", "message"),
    [
        (IdentifierKind.ISIN, "US03783310", "Invalid ISIN format"),
        (IdentifierKind.CUSIP, "A37833100", "Invalid CUSIP format"),
        (IdentifierKind.SEDOL, "026349", "Invalid SEDOL format"),
        (IdentifierKind.LEI, "529900T8BM49AURSDOXX", "Invalid LEI format"),
    ],
)
def test_format_failures_never_offer_correction(kind: IdentifierKind, raw: str, message: str) -> None:
    outcome = validate(kind, raw)

    assert outcome.valid is False
    assert outcome.error_message == message
    assert outcome.severity == Severity.HIGH
    assert outcome.corrected_value is None


@pytest.mark.parametrize("raw", [None, "", 12345])
def test_missing_input(raw: object) -> None:
    outcome = validate_isin(raw)

    assert outcome.valid is False
    assert outcome.error_message == "Missing or invalid ISIN"
    assert outcome.severity == Severity.HIGH


@pytest.mark.parametrize(
    ("kind", "raw"),
    [
        (IdentifierKind.ISIN, "GB0002634940"),
        (IdentifierKind.CUSIP, "594918100"),
        (IdentifierKind.SEDOL, "2046250"),
        (IdentifierKind.LEI, "529900T8BM49AURSDO10"),
    ],
)
def test_corrections_validate(kind: IdentifierKind, raw: str) -> None:
    outcome = validate(kind, raw)

    assert outcome.valid is False
    assert outcome.corrected_value is not None
    assert validate(kind, outcome.corrected_value).valid is True
