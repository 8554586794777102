from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MEMCORE_",
        extra="ignore"  # Provider SDK keys (OPENAI_API_KEY) live unprefixed in the same .env
    )

    sqlite_path: str = "Memory Storage/memcore.db"
    log_level: str = "INFO"

    # Embedding provider: "hash" | "sentence-transformers" | "openai"
    embedding_provider: str = "hash"
    # None -> the provider's own default model and dimension
    embedding_model: str | None = None
    embedding_dim: int | None = None
    provider_timeout_seconds: float | None = 30.0

    # Caches (sizes in entries, TTLs in seconds)
    embedding_cache_size: int = 500
    embedding_cache_ttl: float = 86400.0
    query_cache_size: int = 200
    query_cache_ttl: float = 1800.0
    invalidate_queries_on_write: bool = False

    # Token buckets: capacity, refill tokens/sec, cleanup window seconds
    embedding_rate_capacity: int = 100
    embedding_rate_refill: float = 10.0
    embedding_rate_window: float = 60.0
    search_rate_capacity: int = 200
    search_rate_refill: float = 20.0
    search_rate_window: float = 60.0
    tool_rate_capacity: int = 50
    tool_rate_refill: float = 5.0
    tool_rate_window: float = 60.0

    default_search_limit: int = 5
    default_search_threshold: float = 0.7

settings = Settings()
