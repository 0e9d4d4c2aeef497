import logging
from pathlib import Path
import sqlite3

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from idledger.db_models import Base


logger = logging.getLogger(__name__)


def is_memory_url(database_url: str) -> bool:
    return database_url in {"sqlite://", "sqlite:///:memory:"}


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def restore_snapshot(engine: Engine, snapshot_path: Path) -> bool:
    if not snapshot_path.exists():
        return False

    try:
        data = snapshot_path.read_bytes()
        with engine.connect() as conn:
            driver_connection = conn.connection.driver_connection
            driver_connection.deserialize(data)
            # deserialize accepts any bytes; the first read is what rejects a bad image.
            driver_connection.execute("PRAGMA schema_version").fetchone()
    except (OSError, sqlite3.DatabaseError) as exc:
        logger.error(
            "snapshot unreadable, starting with an empty store",
            extra={"snapshot_path": str(snapshot_path), "error": str(exc)},
        )
        # Drops the connection holding the rejected image.
        engine.dispose()
        return False

    logger.info("store restored from snapshot", extra={"snapshot_path": str(snapshot_path), "bytes": len(data)})
    return True


def build_engine(database_url: str, snapshot_path: str = "") -> Engine:
    connect_args: dict[str, object] = {}
    engine_kwargs: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    if is_memory_url(database_url):
        # One shared connection keeps a single in-memory database alive.
        engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, future=True, connect_args=connect_args, **engine_kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_foreign_keys)

    if snapshot_path and is_memory_url(database_url):
        restore_snapshot(engine, Path(snapshot_path))

    Base.metadata.create_all(engine)
    return engine


def build_session_factory(database_url: str, snapshot_path: str = "") -> sessionmaker[Session]:
    engine = build_engine(database_url, snapshot_path)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False)

