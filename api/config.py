"""
Centralised Deskmate configuration.

Uses Pydantic BaseSettings to:
- Validate EVERY environment variable at startup
- Provide typed values and documented defaults
- Fail fast if critical config is missing (GROQ_API_KEY)
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


# Project root (where .env lives)
PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Typed, validated Deskmate settings."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore undeclared env vars
    )

    # LLM / Groq
    GROQ_API_KEY: str  # Required, startup fails without it
    LLM_MODEL: str = "llama-3.3-70b-versatile"
    GENERATION_TIMEOUT_SECONDS: float = 20.0
    GENERATION_MAX_TOKENS: int = 1024
    GENERATION_TEMPERATURE: float = 0.5
    HISTORY_WINDOW: int = 6

    # Embeddings / knowledge
    EMBEDDING_MODEL: str = "paraphrase-multilingual-MiniLM-L12-v2"
    CHUNK_SIZE: int = 1024
    CHUNK_OVERLAP: int = 128
    TOP_K_RETRIEVAL: int = 3
    SIMILARITY_THRESHOLD: float = 0.35

    # Memory
    MEMORY_RECALL_LIMIT: int = 5

    # Database
    DATABASE_PATH: str = "database/sqlite/deskmate.db"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @property
    def db_full_path(self) -> Path:
        """Absolute path of the database."""
        db = Path(self.DATABASE_PATH)
        if db.is_absolute():
            return db
        return PROJECT_ROOT / db


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings singleton.

    Fails immediately if required variables (GROQ_API_KEY) are missing,
    giving a clear error at startup instead of at runtime.
    """
    return Settings()
