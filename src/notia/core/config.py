"""
Application Configuration

Centralized settings management using Pydantic BaseSettings.
All values are loaded from environment variables or .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable binding.

    Relational store:
        DATABASE_URL_OVERRIDE wins when set (any SQLAlchemy async URL,
        e.g. ``sqlite+aiosqlite:///./notia.db``). Otherwise the URL is built
        from POSTGRES_USER, POSTGRES_PASSWORD, POSTGRES_HOST, POSTGRES_PORT,
        POSTGRES_DB.

    External services:
        CHROMA_* (similarity index), EMBEDDING_MODEL, OLLAMA_* (generation),
        SERVICE_TIMEOUT (seconds, applied to every external call).

    Retrieval:
        RAG_MAX_RESULTS (3), RAG_MIN_SCORE (0.5), RAG_TEMPERATURE (0.7),
        CHAT_MEMORY_SIZE (10).
    """

    PROJECT_NAME: str = "Notia"

    # Database
    DATABASE_URL_OVERRIDE: str | None = None
    POSTGRES_USER: str = "notia"
    POSTGRES_PASSWORD: str = "notia_password"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "notia_db"

    # Similarity index (Chroma v2 REST API)
    CHROMA_BASE_URL: str = "http://localhost:8000"
    CHROMA_TENANT: str = "default_tenant"
    CHROMA_DATABASE: str = "default_database"
    CHROMA_COLLECTION: str = "notia-notes-collection"

    # Embedding model (must match the model that populated the collection)
    EMBEDDING_MODEL: str = "all-MiniLM-L6-v2"

    # Generation (Ollama)
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "mistral"

    SERVICE_TIMEOUT: float = 30.0

    # Retrieval-augmented chat
    RAG_MAX_RESULTS: int = 3
    RAG_MIN_SCORE: float = 0.5
    RAG_TEMPERATURE: float = 0.7
    CHAT_MEMORY_SIZE: int = 10

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",  # Silently ignore unknown env vars
    )

    @property
    def DATABASE_URL(self) -> str:
        """Async SQLAlchemy connection string (asyncpg unless overridden)."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def generation_configured(self) -> bool:
        return bool(self.OLLAMA_BASE_URL.strip() and self.OLLAMA_MODEL.strip())


settings = Settings()
