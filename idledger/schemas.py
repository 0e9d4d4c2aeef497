from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class IdentifierKind(StrEnum):
    ISIN = "ISIN"
    CUSIP = "CUSIP"
    SEDOL = "SEDOL"
    LEI = "LEI"

    @property
    def column(self) -> str:
        return self.value.lower()


class Severity(StrEnum):
    MEDIUM = "medium"
    HIGH = "high"


class RecordStatus(StrEnum):
    VALID = "VALID"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ValidationOutcome:
    valid: bool
    error_message: str | None = None
    corrected_value: str | None = None
    severity: Severity | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldError:
    field: IdentifierKind
    message: str
    severity: Severity


@dataclass(frozen=True)
class Record:
    row_number: int
    entity_name: str
    isin: str = ""
    cusip: str = ""
    sedol: str = ""
    lei: str = ""
    errors: list[FieldError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    corrected: dict[IdentifierKind, str] = field(default_factory=dict)
    metadata: dict[IdentifierKind, dict[str, str]] = field(default_factory=dict)

    @property
    def status(self) -> RecordStatus:
        return RecordStatus.ERROR if self.errors else RecordStatus.VALID

    def raw_value(self, kind: IdentifierKind) -> str:
        if kind is IdentifierKind.ISIN:
            return self.isin
        if kind is IdentifierKind.CUSIP:
            return self.cusip
        if kind is IdentifierKind.SEDOL:
            return self.sedol
        return self.lei

    def stored_value(self, kind: IdentifierKind) -> str:
        return self.corrected.get(kind) or self.raw_value(kind) or ""


@dataclass(frozen=True)
class BatchWarning:
    row_number: int
    entity_name: str
    message: str


@dataclass(frozen=True)
class BatchResult:
    total: int
    valid_count: int
    error_count: int
    warning_count: int
    valid_records: list[Record]
    error_records: list[Record]
    warnings: list[BatchWarning]
    isin_count: int
    cusip_count: int
    sedol_count: int
    lei_count: int
    elapsed_seconds: float | None = None
    records_per_second: float | None = None

    @property
    def records(self) -> list[Record]:
        return [*self.valid_records, *self.error_records]


@dataclass(frozen=True)
class SessionSummary:
    id: int
    name: str
    source_filename: str
    created_at: datetime | None
    total: int
    valid_count: int
    error_count: int
    warning_count: int


@dataclass(frozen=True)
class AuditEntry:
    id: int
    action: str
    session_id: int | None
    details: str
    timestamp: datetime | None


@dataclass(frozen=True)
class StoreStats:
    total_sessions: int
    total_records: int
    total_errors: int


@dataclass(frozen=True)
class QueryResult:
    columns: list[str]
    rows: list[tuple[object, ...]]
