"""Runtime settings, overridable through environment variables."""
import os
from pathlib import Path

APP_DIR = Path.home() / ".vocab_tutor"


class Settings:
    PROJECT_NAME: str = "vocab_tutor"
    DEBUG: bool = os.environ.get("VOCAB_TUTOR_DEBUG", "0") == "1"
    DB_PATH: str = os.environ.get("VOCAB_TUTOR_DB", str(APP_DIR / "tutor.db"))
    LOG_DIR: str = os.environ.get("VOCAB_TUTOR_LOG_DIR", str(APP_DIR / "log"))
    LOG_FILE: str = "vocab_tutor.log"
    DEFAULT_USER: str = os.environ.get("VOCAB_TUTOR_USER", "local")
    AUTO_ADVANCE_SECONDS: float = 3.0
    OPTIONS_PER_QUESTION: int = 4
    DASHBOARD_RANGE_DAYS: int = 30


settings = Settings()
