import logging
from pathlib import Path
import sqlite3

from sqlalchemy import Engine, delete, func, select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from idledger.config import Settings
from idledger.database import build_session_factory
from idledger.db_models import AuditLogEntry, IdentifierRow, ValidationErrorRow, ValidationSession
from idledger.errors import NotFoundError, StoreError, ValidationError
from idledger.retry import RetryExhaustedError, run_with_retries
from idledger.schemas import (
    AuditEntry,
    BatchResult,
    FieldError,
    IdentifierKind,
    QueryResult,
    Record,
    RecordStatus,
    SessionSummary,
    Severity,
    StoreStats,
)


logger = logging.getLogger(__name__)

SAVE_SESSION = "SAVE_SESSION"
DELETE_SESSION = "DELETE_SESSION"


def split_statements(sql_text: str) -> list[str]:
    statements: list[str] = []
    buffer = ""
    for piece in sql_text.split(";"):
        buffer += piece + ";"
        # A semicolon inside a literal or comment leaves the statement incomplete.
        if sqlite3.complete_statement(buffer):
            statement = buffer.strip().rstrip(";").strip()
            if statement:
                statements.append(statement)
            buffer = ""

    leftover = buffer.strip().rstrip(";").strip()
    if leftover:
        statements.append(leftover)
    return statements


def _summary_from_row(session: ValidationSession) -> SessionSummary:
    return SessionSummary(
        id=session.id,
        name=session.name,
        source_filename=session.filename or "",
        created_at=session.upload_date,
        total=session.total_records or 0,
        valid_count=session.valid_records or 0,
        error_count=session.error_records or 0,
        warning_count=session.warnings or 0,
    )


def _field_error_from_row(error: ValidationErrorRow) -> FieldError:
    try:
        return FieldError(
            field=IdentifierKind(error.field),
            message=error.error_message or "",
            severity=Severity(error.severity),
        )
    except ValueError as exc:
        raise StoreError(f"validation error {error.id} is unreadable: {exc}") from exc


def _record_from_row(row: IdentifierRow) -> Record:
    metadata: dict[IdentifierKind, dict[str, str]] = {}
    if row.country_code:
        metadata[IdentifierKind.ISIN] = {"country_code": row.country_code}
    if row.issuer_code:
        metadata[IdentifierKind.CUSIP] = {"issuer_code": row.issuer_code}

    return Record(
        row_number=row.row_num or 0,
        entity_name=row.entity_name or "",
        isin=row.isin or "",
        cusip=row.cusip or "",
        sedol=row.sedol or "",
        lei=row.lei or "",
        errors=[_field_error_from_row(error) for error in row.errors],
        metadata=metadata,
    )


class SessionStore:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        snapshot_path: str = "",
        allow_adhoc_queries: bool = True,
        max_flush_retries: int = 2,
        flush_backoff_seconds: float = 0.5,
    ) -> None:
        self.session_factory = session_factory
        self.engine: Engine = session_factory.kw["bind"]
        self.snapshot_path = Path(snapshot_path) if snapshot_path else None
        self.allow_adhoc_queries = allow_adhoc_queries
        self.max_flush_retries = max_flush_retries
        self.flush_backoff_seconds = flush_backoff_seconds
        self.last_flush_error: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionStore":
        return cls(
            build_session_factory(settings.database_url, settings.snapshot_path),
            snapshot_path=settings.snapshot_path,
            allow_adhoc_queries=settings.allow_adhoc_queries,
            max_flush_retries=settings.max_flush_retries,
            flush_backoff_seconds=settings.flush_backoff_seconds,
        )

    @property
    def durable(self) -> bool:
        return self.last_flush_error is None

    def save(self, name: str, filename: str, result: BatchResult) -> int:
        if not name or not name.strip():
            raise ValidationError("name required")

        with self.session_factory() as db:
            try:
                session = ValidationSession(
                    name=name,
                    filename=filename or "Unknown",
                    total_records=result.total,
                    valid_records=result.valid_count,
                    error_records=result.error_count,
                    warnings=result.warning_count,
                )
                db.add(session)
                db.flush()

                for record in result.records:
                    row = IdentifierRow(
                        session_id=session.id,
                        row_num=record.row_number,
                        entity_name=record.entity_name,
                        isin=record.stored_value(IdentifierKind.ISIN),
                        cusip=record.stored_value(IdentifierKind.CUSIP),
                        sedol=record.stored_value(IdentifierKind.SEDOL),
                        lei=record.stored_value(IdentifierKind.LEI),
                        status=record.status.value,
                        error_count=len(record.errors),
                        country_code=record.metadata.get(IdentifierKind.ISIN, {}).get("country_code"),
                        issuer_code=record.metadata.get(IdentifierKind.CUSIP, {}).get("issuer_code"),
                    )
                    db.add(row)
                    db.flush()

                    for error in record.errors:
                        db.add(
                            ValidationErrorRow(
                                identifier_id=row.id,
                                field=error.field.value,
                                error_message=error.message,
                                severity=error.severity.value,
                                original_value=record.raw_value(error.field),
                                corrected_value=record.corrected.get(error.field),
                            )
                        )

                db.add(AuditLogEntry(action=SAVE_SESSION, session_id=session.id, details=f"Saved {result.total} records"))
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise StoreError(f"failed to save session: {exc}") from exc
            session_id = session.id

        logger.info("session saved", extra={"session_id": session_id, "total": result.total})
        self._flush_snapshot()
        return session_id

    def load(self, session_id: int) -> BatchResult:
        with self.session_factory() as db:
            session = db.get(ValidationSession, session_id)
            if session is None:
                raise NotFoundError(f"session {session_id} not found")

            stmt = (
                select(IdentifierRow)
                .where(IdentifierRow.session_id == session_id)
                .options(selectinload(IdentifierRow.errors))
                .order_by(IdentifierRow.id)
            )
            rows = db.execute(stmt).scalars().all()

            valid_records: list[Record] = []
            error_records: list[Record] = []
            for row in rows:
                record = _record_from_row(row)
                if row.status == RecordStatus.ERROR.value:
                    error_records.append(record)
                else:
                    valid_records.append(record)

            records = [*valid_records, *error_records]
            # Stored counts stay authoritative; only presence counts are derived.
            return BatchResult(
                total=session.total_records or 0,
                valid_count=session.valid_records or 0,
                error_count=session.error_records or 0,
                warning_count=session.warnings or 0,
                valid_records=valid_records,
                error_records=error_records,
                warnings=[],
                isin_count=sum(1 for record in records if record.isin),
                cusip_count=sum(1 for record in records if record.cusip),
                sedol_count=sum(1 for record in records if record.sedol),
                lei_count=sum(1 for record in records if record.lei),
            )

    def list_sessions(self) -> list[SessionSummary]:
        with self.session_factory() as db:
            stmt = select(ValidationSession).order_by(ValidationSession.upload_date.desc(), ValidationSession.id.desc())
            return [_summary_from_row(session) for session in db.execute(stmt).scalars().all()]

    def delete(self, session_id: int) -> bool:
        with self.session_factory() as db:
            if db.get(ValidationSession, session_id) is None:
                return False

            try:
                identifier_ids = select(IdentifierRow.id).where(IdentifierRow.session_id == session_id)
                db.execute(delete(ValidationErrorRow).where(ValidationErrorRow.identifier_id.in_(identifier_ids)))
                db.execute(delete(IdentifierRow).where(IdentifierRow.session_id == session_id))
                db.execute(delete(ValidationSession).where(ValidationSession.id == session_id))
                db.add(AuditLogEntry(action=DELETE_SESSION, session_id=session_id, details="Session deleted"))
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise StoreError(f"failed to delete session {session_id}: {exc}") from exc

        logger.info("session deleted", extra={"session_id": session_id})
        self._flush_snapshot()
        return True

    def run_query(self, sql_text: str) -> list[QueryResult]:
        if not self.allow_adhoc_queries:
            raise StoreError("ad-hoc queries are disabled")

        results: list[QueryResult] = []
        mutated = False
        with self.engine.connect() as conn:
            driver_connection = conn.connection.driver_connection
            changes_before = getattr(driver_connection, "total_changes", 0)
            try:
                for statement in split_statements(sql_text):
                    # Driver-level execution: no bind parameter parsing of user text.
                    cursor = conn.exec_driver_sql(statement)
                    if cursor.returns_rows:
                        results.append(QueryResult(columns=list(cursor.keys()), rows=[tuple(row) for row in cursor.all()]))
                    else:
                        mutated = True
                conn.commit()
                # Catches writes that also return rows, such as INSERT ... RETURNING.
                if getattr(driver_connection, "total_changes", 0) != changes_before:
                    mutated = True
            except DBAPIError as exc:
                conn.rollback()
                raise StoreError(str(exc.orig)) from exc

        if mutated:
            self._flush_snapshot()
        return results

    def export(self) -> bytes:
        if self.engine.dialect.name != "sqlite":
            raise StoreError(f"export is not supported for the {self.engine.dialect.name} backend")

        with self.engine.connect() as conn:
            try:
                return conn.connection.driver_connection.serialize()
            except sqlite3.Error as exc:
                raise StoreError(f"failed to export store: {exc}") from exc

    def export_to(self, path: Path) -> int:
        data = self.export()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return len(data)

    def stats(self) -> StoreStats:
        with self.session_factory() as db:
            return StoreStats(
                total_sessions=db.execute(select(func.count()).select_from(ValidationSession)).scalar_one(),
                total_records=db.execute(select(func.count()).select_from(IdentifierRow)).scalar_one(),
                total_errors=db.execute(select(func.count()).select_from(ValidationErrorRow)).scalar_one(),
            )

    def audit_entries(self, session_id: int | None = None) -> list[AuditEntry]:
        stmt = select(AuditLogEntry).order_by(AuditLogEntry.id)
        if session_id is not None:
            stmt = stmt.where(AuditLogEntry.session_id == session_id)

        with self.session_factory() as db:
            return [
                AuditEntry(
                    id=entry.id,
                    action=entry.action or "",
                    session_id=entry.session_id,
                    details=entry.details or "",
                    timestamp=entry.timestamp,
                )
                for entry in db.execute(stmt).scalars().all()
            ]

    def _write_snapshot(self) -> None:
        assert self.snapshot_path is not None
        data = self.export()
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        staging = self.snapshot_path.with_name(self.snapshot_path.name + ".tmp")
        staging.write_bytes(data)
        staging.replace(self.snapshot_path)

    def _flush_snapshot(self) -> None:
        if self.snapshot_path is None:
            return

        try:
            run_with_retries(
                self._write_snapshot,
                max_retries=self.max_flush_retries,
                backoff_seconds=self.flush_backoff_seconds,
                retry_on=(OSError, StoreError),
                on_attempt_failure=lambda attempt, exc: logger.warning(
                    "snapshot flush attempt failed",
                    extra={"attempt": attempt, "error": str(exc)},
                ),
            )
        except RetryExhaustedError as exc:
            # The committed change stays in the live store; only durability is degraded.
            self.last_flush_error = str(exc)
            logger.error(
                "snapshot flush failed",
                extra={"snapshot_path": str(self.snapshot_path), "error": str(exc)},
            )
            return

        self.last_flush_error = None
