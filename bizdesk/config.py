from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # JWT Authentication
    SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"

    # Application
    APP_NAME: str = "BizDesk API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: str = ""
    CORS_ALLOW_CREDENTIALS: bool = True

    # Rate limiting (per action, overridable at registration)
    RATE_LIMIT_WINDOW_MINUTES: int = 5
    RATE_LIMIT_MAX_ATTEMPTS: int = 10
    RATE_LIMIT_DEGRADE_OPEN: bool = True
    # Attempts older than this are deleted; keep it above the widest window
    RATE_LIMIT_RETENTION_MINUTES: int = 24 * 60

    # Suspicious activity detection (detection only, never blocks)
    SUSPICIOUS_MAX_ACTIONS_PER_HOUR: int = 50
    SUSPICIOUS_MAX_DISTINCT_IPS: int = 3
    SUSPICIOUS_MAX_DELETES_PER_DAY: int = 10
    SUSPICIOUS_MAX_OFF_HOURS_ACTIONS: int = 5
    OFF_HOURS_START: int = 22
    OFF_HOURS_END: int = 6

    # Audit / pagination
    AUDIT_STATS_DEFAULT_DAYS: int = 30
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS from comma-separated string"""
        if not self.CORS_ORIGINS:
            return []
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


# Global settings instance
settings = Settings()
