"""
Application configuration from environment variables.
"""
from functools import lru_cache
from urllib.parse import quote_plus

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Patio Sun Exposure API"
    debug: bool = False

    # Database
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "sun_exposure"
    db_username: str = "postgres"
    db_password: str = ""

    # Wire the in-memory repositories instead of PostGIS (local dev / demos)
    use_in_memory_store: bool = False

    # CORS - allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",  # Alternative dev server
    ]

    # Site defaults for solar queries without a patio (Gothenburg)
    default_latitude: float = 57.7089
    default_longitude: float = 11.9746

    # Local presentation timezone for localTime fields
    local_timezone: str = "Europe/Stockholm"

    # Shadow engine
    max_shadow_distance_m: float = 200.0
    min_meaningful_height_m: float = 3.0
    min_reliable_elevation_deg: float = 5.0
    default_building_height_m: float = 7.0

    # Orchestrator limits
    max_batch_patios: int = 100
    max_timeline_hours: int = 48
    max_timeline_points: int = 10000
    default_timeline_resolution_minutes: int = 10
    precomputed_tolerance_minutes: int = 5

    # Cache
    memory_cache_ttl_seconds: int = 300       # 5 minutes
    distributed_cache_ttl_seconds: int = 7200  # 2 hours

    # Precomputation
    precomputation_batch_size: int = 10
    precomputation_max_concurrency: int = 10
    precomputation_retention_days: int = 3
    precomputation_version: str = "1.0"
    precomputation_lease_minutes: int = 60

    # Worker
    worker_poll_interval_seconds: int = 300

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @property
    def database_url(self) -> str:
        """Construct async database URL for SQLAlchemy."""
        # URL-encode the password to handle special characters
        encoded_password = quote_plus(self.db_password)
        return (
            f"postgresql+asyncpg://{self.db_username}:{encoded_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Construct sync database URL for Alembic migrations."""
        encoded_password = quote_plus(self.db_password)
        return (
            f"postgresql+psycopg://{self.db_username}:{encoded_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
