from typing import Literal
from urllib.parse import quote_plus
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # --- Basic configuration ---
    APP_NAME: str = "Bookshelf"
    APP_DESCRIPTION: str = "Book catalog built on a generic repository and unit of work"
    APP_VERSION: str = "1.0.0"
    APP_ENV: str = "development"  # development, production, testing
    DEBUG: bool = True

    # --- Database ---
    DB_BACKEND: Literal["sqlite", "mysql"] = "sqlite"
    SQLITE_PATH: str = "bookshelf.db"
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = "root"
    DB_NAME: str = "bookshelf"
    DB_ECHO: bool = False
    # Create tables from model metadata on startup (no migrations)
    DB_CREATE_ALL: bool = True

    @property
    def DATABASE_URL(self) -> str:
        # Async driver URL, used by the application engine
        if self.DB_BACKEND == "sqlite":
            return f"sqlite+aiosqlite:///{self.SQLITE_PATH}"
        safe_password = quote_plus(self.DB_PASSWORD)
        return f"mysql+aiomysql://{self.DB_USER}:{safe_password}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # --- Logging ---
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    # --- API route prefixes ---
    API_V1_BOOKS_PREFIX: str = "/api/v1/books"

    # --- Pydantic ---
    # Priority: env vars > .env > defaults
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )


# Singleton settings instance
settings = Settings()
