"""Configuration management using pydantic-settings."""

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DOCWEAVE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Paths
    data_dir: Path = Path("data")
    index_dir: Path = Path("data/indexes")
    repos_dir: Path = Path("data/repos")
    database_url: str = "sqlite+aiosqlite:///data/docweave.db"

    # Logging
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    # Git
    git_remote_name: str = "origin"

    # Chunking
    chunk_min_tokens: int = 100
    chunk_max_tokens: int = 512
    chunk_overlap_tokens: int = 50

    # Retrieval
    default_top_k: int = 10
    max_top_k: int = 50
    rrf_k: int = 60
    similarity_threshold: float = 0.5
    hybrid_source_timeout_seconds: float = 10.0
    hybrid_include_graph: bool = False

    # Embedding
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_batch_size: int = 100

    # LLM
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.0

    # Graph
    neo4j_enabled: bool = False
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "password"
    neo4j_database: str = "neo4j"

    # Query synthesis
    query_synthesis_max_retries: int = 3
    query_synthesis_timeout_seconds: float = 60.0

    # Cache
    cache_max_size: int = 1000
    cache_ttl_seconds: int = 300

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Ensure directories exist
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.index_dir.mkdir(parents=True, exist_ok=True)
        self.repos_dir.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
