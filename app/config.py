from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Storage backend: "memory" keeps graph + meetings in-process, "postgres" uses DATABASE_URL
    STORE_BACKEND: str = "memory"
    DATABASE_URL: str | None = None
    REDIS_URL: str | None = None

    # Request context
    TRUST_X_FORWARDED_FOR: bool = False
    TRUSTED_PROXY_IPS: list[str] = []

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 3
    DB_POOL_MAX_SIZE: int = 12
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    # =================================================================
    # INGESTION
    # =================================================================
    SCAN_DEDUP_TTL_HOURS: int = 72
    SCAN_WEBHOOK_SECRET: str | None = None

    # =================================================================
    # MATCHING / SCHEDULING
    # =================================================================
    MATCH_DEFAULT_LIMIT: int = 10
    MATCH_MAX_LIMIT: int = 100
    MEETING_TRANSITION_ATTEMPTS: int = 3

    # Retry of Unavailable errors at the boundary
    BOUNDARY_MAX_RETRIES: int = 3
    BOUNDARY_RETRY_BASE_DELAY: float = 0.1

    # Hotspot summary job
    HOTSPOT_INTERVAL_MINUTES: int = 5
    HOTSPOT_WINDOW_MINUTES: int = 60

    # Dedup claim + scan log purge job
    SCAN_RETENTION_INTERVAL_MINUTES: int = 60

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def scan_dedup_ttl_seconds(self) -> int:
        return self.SCAN_DEDUP_TTL_HOURS * 3600

    def uses_postgres(self) -> bool:
        return self.STORE_BACKEND.strip().lower() == "postgres"

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # More conservative for local development
            config.update(
                {
                    "min_size": 2,
                    "max_size": 6,
                    "timeout": 15.0,
                }
            )

        return config


settings = Settings()
