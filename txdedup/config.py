"""Configuration from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # PostgreSQL (from postgresql-credentials secret)
    postgres_host: str = "postgresql.finance.svc.cluster.local"
    postgres_port: int = 5432
    postgres_user: str = "app"
    postgres_password: str = ""
    postgres_db: str = "app"

    log_level: str = "INFO"

    # Deduplication defaults, overridable per request
    dedup_date_tolerance_days: int = 3
    dedup_amount_tolerance_percent: float = 1.0
    dedup_description_similarity_threshold: float = 0.8
    dedup_auto_merge_threshold: float = 0.95

    # Range detection limits
    dedup_batch_size: int = 100
    dedup_max_range_days: int = 365

    # Nightly sweep
    sweep_enabled: bool = False
    sweep_run_hour: int = 3  # 3 AM UTC
    sweep_lookback_days: int = 30

    @property
    def database_url(self) -> str:
        """SQLAlchemy database URL."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        """Synchronous database URL for Alembic."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_prefix = ""
        case_sensitive = False


settings = Settings()
