# config/settings.py
import os
import sys
from typing import Optional
from dotenv import load_dotenv
from pydantic import ValidationError, Field
from pydantic_settings import BaseSettings
from util.enums import Environment, LateFailurePolicy
import logging


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()

_log = logging.getLogger("config.settings")


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(default=Environment.DEV.value, validation_alias="APP_ENV")
    REDIS_URL: str = Field(..., validation_alias="REDIS_URL")
    LEDGER_TTL_SECONDS: int = Field(default=0, validation_alias="LEDGER_TTL_SECONDS")
    LEDGER_LIST_LIMIT: int = Field(default=100, validation_alias="LEDGER_LIST_LIMIT")

    # CORS & Limits
    ALLOWED_ORIGIN: str = Field(default="*", validation_alias="ALLOWED_ORIGIN")
    RATE_LIMIT_ENABLED: bool = Field(default=True, validation_alias="RATE_LIMIT_ENABLED")
    RATE_LIMIT_TIMES: int = Field(default=30, validation_alias="RATE_LIMIT_TIMES")
    RATE_LIMIT_SECONDS: int = Field(default=60, validation_alias="RATE_LIMIT_SECONDS")
    TRUST_PROXY: bool = Field(default=False, validation_alias="TRUST_PROXY")
    APP_HOST: str = Field(default="127.0.0.1", validation_alias="APP_HOST")
    APP_PORT: int = Field(default=8080, validation_alias="APP_PORT")

    # External tools
    YTDLP_PATH: str = Field(default="yt-dlp", validation_alias="YTDLP_PATH")
    FFMPEG_PATH: str = Field(default="ffmpeg", validation_alias="FFMPEG_PATH")
    REQUIRE_TOOLS: bool = Field(default=False, validation_alias="REQUIRE_TOOLS")

    # Pipeline
    TITLE_TIMEOUT_SECONDS: float = Field(
        default=30.0, validation_alias="TITLE_TIMEOUT_SECONDS"
    )
    STREAM_BUFFER_BYTES: int = Field(
        default=512 * 1024, validation_alias="STREAM_BUFFER_BYTES"
    )
    STREAM_FLUSH_BYTES: int = Field(
        default=512 * 1024, validation_alias="STREAM_FLUSH_BYTES"
    )
    BUFFER_POOL_SIZE: int = Field(default=16, validation_alias="BUFFER_POOL_SIZE")
    # Unset means no deadline; a hung source then holds its pipeline open.
    PIPELINE_TIMEOUT_SECONDS: Optional[float] = Field(
        default=None, validation_alias="PIPELINE_TIMEOUT_SECONDS"
    )
    REAP_TIMEOUT_SECONDS: float = Field(
        default=5.0, validation_alias="REAP_TIMEOUT_SECONDS"
    )
    LATE_FAILURE_POLICY: LateFailurePolicy = Field(
        default=LateFailurePolicy.COMPLETE_PARTIAL,
        validation_alias="LATE_FAILURE_POLICY",
    )

    # Logging knobs
    LOGGER_NAME: str = "media-stream"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="app.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")


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
