from collections.abc import Callable
import re

from idledger.schemas import IdentifierKind, Severity, ValidationOutcome


ISIN_PATTERN = re.compile(r"^[A-Z]{2}[A-Z0-9]{9}[0-9]$")
CUSIP_PATTERN = re.compile(r"^[0-9]{3}[A-Z0-9]{5}[0-9]$")
# SEDOL excludes vowels from its alphabet.
SEDOL_PATTERN = re.compile(r"^[B-DF-HJ-NP-TV-Z0-9]{6}[0-9]$")
LEI_PATTERN = re.compile(r"^[A-Z0-9]{18}[0-9]{2}$")

SEDOL_WEIGHTS = (1, 3, 1, 7, 3, 9)


class FormatError(ValueError):
    severity = Severity.HIGH

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ChecksumError(ValueError):
    severity = Severity.MEDIUM

    def __init__(self, corrected_value: str) -> None:
        super().__init__("Invalid checksum")
        self.message = "Invalid checksum"
        self.corrected_value = corrected_value


def char_value(char: str) -> int:
    # Digits map to themselves, A-Z to 10-35.
    if char.isdigit():
        return int(char)
    return ord(char) - 55


def _digit_stream(value: str) -> str:
    return "".join(str(char_value(char)) for char in value)


def isin_check_digit(body: str) -> int:
    digits = _digit_stream(body)
    total = 0
    double = True
    for char in reversed(digits):
        digit = int(char)
        if double:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
        double = not double
    return (10 - total % 10) % 10


def cusip_check_digit(body: str) -> int:
    total = 0
    for index, char in enumerate(body[:8]):
        value = char_value(char)
        if index % 2 == 1:
            value *= 2
        total += value // 10 + value % 10
    return (10 - total % 10) % 10


def sedol_check_digit(body: str) -> int:
    total = sum(char_value(char) * weight for char, weight in zip(body[:6], SEDOL_WEIGHTS))
    return (10 - total % 10) % 10


def lei_check_digits(body: str) -> str:
    remainder = 0
    for char in _digit_stream(body[:18] + "00"):
        remainder = (remainder * 10 + int(char)) % 97
    return f"{98 - remainder:02d}"


def _normalize(raw: object, kind: IdentifierKind, pattern: re.Pattern[str]) -> str:
    if not raw or not isinstance(raw, str):
        raise FormatError(f"Missing or invalid {kind.value}")
    value = raw.strip().upper()
    if not pattern.match(value):
        raise FormatError(f"Invalid {kind.value} format")
    return value


def check_isin(raw: object) -> dict[str, str]:
    value = _normalize(raw, IdentifierKind.ISIN, ISIN_PATTERN)
    metadata = {"country_code": value[:2]}
    expected = isin_check_digit(value[:-1])
    if expected != int(value[-1]):
        raise ChecksumError(value[:-1] + str(expected))
    return metadata


def check_cusip(raw: object) -> dict[str, str]:
    value = _normalize(raw, IdentifierKind.CUSIP, CUSIP_PATTERN)
    metadata = {"issuer_code": value[:6]}
    expected = cusip_check_digit(value)
    if expected != int(value[8]):
        raise ChecksumError(value[:8] + str(expected))
    return metadata


def check_sedol(raw: object) -> dict[str, str]:
    value = _normalize(raw, IdentifierKind.SEDOL, SEDOL_PATTERN)
    expected = sedol_check_digit(value)
    if expected != int(value[6]):
        raise ChecksumError(value[:6] + str(expected))
    return {}


def check_lei(raw: object) -> dict[str, str]:
    value = _normalize(raw, IdentifierKind.LEI, LEI_PATTERN)
    metadata = {"lou_code": value[:4]}
    expected = lei_check_digits(value)
    if value[18:] != expected:
        raise ChecksumError(value[:18] + expected)
    return metadata


def _to_outcome(check: Callable[[object], dict[str, str]], raw: object) -> ValidationOutcome:
    try:
        metadata = check(raw)
    except FormatError as exc:
        return ValidationOutcome(valid=False, error_message=exc.message, severity=exc.severity)
    except ChecksumError as exc:
        return ValidationOutcome(
            valid=False,
            error_message=exc.message,
            corrected_value=exc.corrected_value,
            severity=exc.severity,
        )
    return ValidationOutcome(valid=True, metadata=metadata)


def validate_isin(raw: object) -> ValidationOutcome:
    return _to_outcome(check_isin, raw)


def validate_cusip(raw: object) -> ValidationOutcome:
    return _to_outcome(check_cusip, raw)


def validate_sedol(raw: object) -> ValidationOutcome:
    return _to_outcome(check_sedol, raw)


def validate_lei(raw: object) -> ValidationOutcome:
    return _to_outcome(check_lei, raw)


VALIDATORS: dict[IdentifierKind, Callable[[object], ValidationOutcome]] = {
    IdentifierKind.ISIN: validate_isin,
    IdentifierKind.CUSIP: validate_cusip,
    IdentifierKind.SEDOL: validate_sedol,
    IdentifierKind.LEI: validate_lei,
}


def validate(kind: IdentifierKind, raw: object) -> ValidationOutcome:
    return VALIDATORS[kind](raw)
