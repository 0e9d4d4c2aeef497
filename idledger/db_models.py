from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def utc_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


# Only sessions.name is NOT NULL; rows written through ad-hoc statements may leave the rest empty.
class ValidationSession(Base):
    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    filename: Mapped[str | None] = mapped_column(Text, nullable=True)
    upload_date: Mapped[datetime | None] = mapped_column(
        DateTime,
        default=utc_now,
        server_default=func.current_timestamp(),
        index=True,
    )
    total_records: Mapped[int | None] = mapped_column(Integer, nullable=True)
    valid_records: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_records: Mapped[int | None] = mapped_column(Integer, nullable=True)
    warnings: Mapped[int | None] = mapped_column(Integer, nullable=True)

    identifiers: Mapped[list["IdentifierRow"]] = relationship(
        back_populates="session",
        order_by="IdentifierRow.id",
    )


class IdentifierRow(Base):
    __tablename__ = "identifiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int | None] = mapped_column(ForeignKey("sessions.id"), nullable=True, index=True)
    row_num: Mapped[int | None] = mapped_column(Integer, nullable=True)
    entity_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    isin: Mapped[str | None] = mapped_column(Text, nullable=True)
    cusip: Mapped[str | None] = mapped_column(Text, nullable=True)
    sedol: Mapped[str | None] = mapped_column(Text, nullable=True)
    lei: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    error_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    country_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    issuer_code: Mapped[str | None] = mapped_column(Text, nullable=True)

    session: Mapped[ValidationSession | None] = relationship(back_populates="identifiers")
    errors: Mapped[list["ValidationErrorRow"]] = relationship(
        back_populates="identifier",
        order_by="ValidationErrorRow.id",
    )


class ValidationErrorRow(Base):
    __tablename__ = "validation_errors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier_id: Mapped[int | None] = mapped_column(ForeignKey("identifiers.id"), nullable=True, index=True)
    field: Mapped[str | None] = mapped_column(String(8), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    severity: Mapped[str | None] = mapped_column(String(16), nullable=True)
    original_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    corrected_value: Mapped[str | None] = mapped_column(Text, nullable=True)

    identifier: Mapped[IdentifierRow | None] = relationship(back_populates="errors")


class AuditLogEntry(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str | None] = mapped_column(String(32), nullable=True)
    # Plain column: audit rows outlive the sessions they mention.
    session_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime | None] = mapped_column(
        DateTime,
        default=utc_now,
        server_default=func.current_timestamp(),
    )
