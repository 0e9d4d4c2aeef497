from collections.abc import Generator
from pathlib import Path

import pytest

from idledger.config import Settings
from idledger.database import build_session_factory
from idledger.pipeline import BatchRunner
from idledger.session_store import SessionStore


SAMPLE_CSV = "\n".join(
    [
        "Name,ISIN,CUSIP,SEDOL,LEI",
        "Apple Inc,US0378331005,037833100,2046251,HWUPKR0MPOU8FGXBT394",
        "Acme Corp,US0378331004,,,",
        "Broken Ltd,XX12,037833100,,",
        "Microsoft,US5949181045,594918104,,",
    ]
)


@pytest.fixture()
def temp_workspace(tmp_path: Path) -> Path:
    (tmp_path / "data").mkdir(parents=True, exist_ok=True)
    (tmp_path / "outputs").mkdir(parents=True, exist_ok=True)
    return tmp_path


@pytest.fixture()
def test_settings(temp_workspace: Path) -> Settings:
    return Settings(
        app_name="idledger",
        database_url=f"sqlite:///{temp_workspace / 'test.db'}",
        snapshot_path="",
        log_level="INFO",
        output_dir=str(temp_workspace / "outputs"),
        allow_adhoc_queries=True,
        max_flush_retries=0,
        flush_backoff_seconds=0,
    )


@pytest.fixture()
def store(test_settings: Settings) -> Generator[SessionStore, None, None]:
    session_factory = build_session_factory(test_settings.database_url)
    yield SessionStore(session_factory)
    session_factory.kw["bind"].dispose()


@pytest.fixture()
def runner(test_settings: Settings, store: SessionStore) -> BatchRunner:
    return BatchRunner(test_settings, store)


@pytest.fixture()
def sample_file(temp_workspace: Path) -> Path:
    path = temp_workspace / "data" / "securities.csv"
    path.write_text(SAMPLE_CSV + "\n", encoding="utf-8")
    return path


@pytest.fixture()
def sample_text() -> str:
    return SAMPLE_CSV
