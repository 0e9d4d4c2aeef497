from idledger.schemas import FieldError, IdentifierKind, Record, Severity
from idledger.validators import VALIDATORS


def classify_row(
    row_number: int,
    entity_name: str,
    *,
    isin: str = "",
    cusip: str = "",
    sedol: str = "",
    lei: str = "",
) -> Record:
    raw_values = {
        IdentifierKind.ISIN: isin,
        IdentifierKind.CUSIP: cusip,
        IdentifierKind.SEDOL: sedol,
        IdentifierKind.LEI: lei,
    }
    errors: list[FieldError] = []
    warnings: list[str] = []
    corrected: dict[IdentifierKind, str] = {}
    metadata: dict[IdentifierKind, dict[str, str]] = {}

    # Each field is checked independently so one bad identifier never hides another.
    for kind, raw in raw_values.items():
        if not raw:
            continue

        outcome = VALIDATORS[kind](raw)
        if outcome.valid:
            metadata[kind] = outcome.metadata
            continue

        errors.append(
            FieldError(
                field=kind,
                message=outcome.error_message or "",
                severity=outcome.severity or Severity.HIGH,
            )
        )
        if outcome.corrected_value:
            corrected[kind] = outcome.corrected_value
            warnings.append(f"{kind.value} corrected: {raw} → {outcome.corrected_value}")

    return Record(
        row_number=row_number,
        entity_name=entity_name,
        isin=isin,
        cusip=cusip,
        sedol=sedol,
        lei=lei,
        errors=errors,
        warnings=warnings,
        corrected=corrected,
        metadata=metadata,
    )
