from dataclasses import dataclass
import os

from dotenv import load_dotenv


load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    snapshot_path: str
    log_level: str
    output_dir: str
    allow_adhoc_queries: bool
    max_flush_retries: int
    flush_backoff_seconds: float


def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "idledger"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./identifiers.db"),
        snapshot_path=os.getenv("SNAPSHOT_PATH", ""),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        output_dir=os.getenv("OUTPUT_DIR", "./outputs"),
        allow_adhoc_queries=_env_flag("ALLOW_ADHOC_QUERIES", "true"),
        max_flush_retries=int(os.getenv("MAX_FLUSH_RETRIES", "2")),
        flush_backoff_seconds=float(os.getenv("FLUSH_BACKOFF_SECONDS", "0.5")),
    )
