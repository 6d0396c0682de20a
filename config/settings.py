# config/settings.py
import os
import sys
from dotenv import load_dotenv
from pydantic import ValidationError, Field
from pydantic_settings import BaseSettings
from util.enums import Environment


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(default=Environment.DEV.value, validation_alias="APP_ENV")
    ALLOWED_ORIGIN: str = Field(default="*", validation_alias="ALLOWED_ORIGIN")
    # Base the worker uses to reach our callback endpoint
    PUBLIC_BASE_URL: str = Field(
        default="http://localhost:8000", validation_alias="PUBLIC_BASE_URL"
    )

    # Upload limits
    MAX_FILE_MB: int = Field(default=20, validation_alias="MAX_FILE_MB")
    BATCH_MAX_FILES: int = Field(default=20, validation_alias="BATCH_MAX_FILES")

    # External recognition worker
    WORKER_BASE_URL: str = Field(
        default="http://localhost:8001", validation_alias="WORKER_BASE_URL"
    )
    WORKER_TIMEOUT_SECONDS: float = Field(
        default=5.0, validation_alias="WORKER_TIMEOUT_SECONDS"
    )
    WORKER_CONNECT_TIMEOUT_SECONDS: float = Field(
        default=3.0, validation_alias="WORKER_CONNECT_TIMEOUT_SECONDS"
    )
    SUBMIT_MAX_ATTEMPTS: int = Field(default=3, validation_alias="SUBMIT_MAX_ATTEMPTS")
    SUBMIT_BACKOFF_SECONDS: float = Field(
        default=0.5, validation_alias="SUBMIT_BACKOFF_SECONDS"
    )
    ESTIMATED_COMPLETION_SECONDS: int = Field(
        default=60, validation_alias="ESTIMATED_COMPLETION_SECONDS"
    )

    # Reconciliation
    RECONCILE_INTERVAL_SECONDS: float = Field(
        default=30.0, validation_alias="RECONCILE_INTERVAL_SECONDS"
    )
    RECONCILE_CONCURRENCY: int = Field(
        default=8, validation_alias="RECONCILE_CONCURRENCY"
    )
    SAFETY_MARGIN_SECONDS: int = Field(
        default=30, validation_alias="SAFETY_MARGIN_SECONDS"
    )
    FORCE_TIMEOUT_SECONDS: int = Field(
        default=5 * 60, validation_alias="FORCE_TIMEOUT_SECONDS"
    )
    UNKNOWN_STATUS_GRACE_SECONDS: int = Field(
        default=3 * 60, validation_alias="UNKNOWN_STATUS_GRACE_SECONDS"
    )
    QUERY_FAILURE_GRACE_SECONDS: int = Field(
        default=2 * 60, validation_alias="QUERY_FAILURE_GRACE_SECONDS"
    )
    PROGRESS_EVENT_MIN_ELAPSED_SECONDS: int = Field(
        default=60, validation_alias="PROGRESS_EVENT_MIN_ELAPSED_SECONDS"
    )

    # Streams & cleanup
    STREAM_MAX_LIFETIME_SECONDS: float = Field(
        default=30 * 60, validation_alias="STREAM_MAX_LIFETIME_SECONDS"
    )
    STREAM_HEARTBEAT_SECONDS: float = Field(
        default=15.0, validation_alias="STREAM_HEARTBEAT_SECONDS"
    )
    STREAM_QUEUE_SIZE: int = Field(default=64, validation_alias="STREAM_QUEUE_SIZE")
    CLEANUP_GRACE_SECONDS: int = Field(
        default=30 * 60, validation_alias="CLEANUP_GRACE_SECONDS"
    )
    MAINTENANCE_INTERVAL_SECONDS: float = Field(
        default=60.0, validation_alias="MAINTENANCE_INTERVAL_SECONDS"
    )

    # Batches
    BATCH_POLL_INTERVAL_SECONDS: float = Field(
        default=5.0, validation_alias="BATCH_POLL_INTERVAL_SECONDS"
    )
    BATCH_WATCH_MAX_SECONDS: int = Field(
        default=30 * 60, validation_alias="BATCH_WATCH_MAX_SECONDS"
    )

    # Logging knobs
    LOGGER_NAME: str = "recognition-orchestrator"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="app.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")

    @property
    def max_file_bytes(self) -> int:
        return self.MAX_FILE_MB * 1024 * 1024


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)
