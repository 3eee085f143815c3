"""
Core configuration for the Rain backend
"""
from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List, Optional
from functools import lru_cache
from pathlib import Path
from sqlalchemy.engine import make_url
import os

from rain.core.exceptions import ConfigurationError


class Settings(BaseSettings):
    # ===========================================
    # SERVER & INFRASTRUCTURE
    # ===========================================

    APP_NAME: str = "rain-backend"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    BACKEND_HOST: str = "0.0.0.0"
    BACKEND_PORT: int = Field(default=8080, ge=1, le=65535)

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/rain.db"
    DB_POOL_SIZE: int = Field(default=5, ge=1)
    RESET_DB: bool = False  # Drop and recreate all tables on startup

    # ===========================================
    # STORAGE & LOGGING
    # ===========================================

    DATA_ROOT: str = "./data/uploads"  # <DATA_ROOT>/<bundle-hash>/<file>
    LOG_DIR: str = "./log"
    LOG_LEVEL: str = "INFO"

    # ===========================================
    # INGESTION LIMITS
    # ===========================================

    ARCHIVE_WORKERS: int = Field(default=2, ge=1)
    ARCHIVE_MAX_ENTRIES: int = Field(default=10_000, ge=1)
    ARCHIVE_MAX_TOTAL_BYTES: int = Field(default=2 * 1024 * 1024 * 1024, ge=1)  # 2GB
    MAX_SEGMENTS_PER_FILE: int = Field(default=1000, ge=1)

    # ===========================================
    # SEARCH
    # ===========================================

    MAX_SEARCH_RESULTS: int = Field(default=50, ge=1)
    SNIPPET_CONTEXT_CHARS: int = Field(default=40, ge=0)
    SNIPPET_FALLBACK_CHARS: int = Field(default=120, ge=1)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def data_root(self) -> Path:
        return Path(self.DATA_ROOT)

    @property
    def log_dir(self) -> Path:
        return Path(self.LOG_DIR)

    @property
    def sqlite_path(self) -> Optional[Path]:
        """Database file of a file-backed SQLite URL, None otherwise"""
        url = make_url(self.DATABASE_URL)
        if url.get_backend_name() != "sqlite" or url.database in (None, "", ":memory:"):
            return None
        return Path(url.database)

    def prepare_directories(self) -> None:
        """
        Create the upload and log directories, and the folder of a SQLite file.

        Raises ConfigurationError when one of them is unusable; this only
        happens at startup and is fatal.
        """
        targets = [("DATA_ROOT", self.data_root), ("LOG_DIR", self.log_dir)]
        if self.sqlite_path is not None:
            targets.append(("DATABASE_URL", self.sqlite_path.parent))

        for label, path in targets:
            try:
                os.makedirs(path, exist_ok=True)
            except OSError as e:
                raise ConfigurationError(f"invalid {label}: {e}") from e


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
