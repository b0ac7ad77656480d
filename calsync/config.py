from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Runtime
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Auth (JWT issuer)
    SUPABASE_URL: str
    SUPABASE_JWKS_URL: str | None = None

    # Storage
    DATABASE_URL: str
    REDIS_URL: str = "redis://localhost:6379/0"
    ENCRYPTION_KEY: str | None = None

    # Google Calendar OAuth
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REDIRECT_URI: str | None = None
    GOOGLE_WEBHOOK_TOKEN: str | None = None

    # Microsoft Graph OAuth
    MICROSOFT_CLIENT_ID: str | None = None
    MICROSOFT_CLIENT_SECRET: str | None = None
    MICROSOFT_REDIRECT_URI: str | None = None
    MICROSOFT_WEBHOOK_CLIENT_STATE: str | None = None

    # Browser is sent here after the OAuth callback
    FRONTEND_URL: str = "http://localhost:3001"
    PUBLIC_API_URL: str = "http://localhost:8000"

    # Sync engine and suggestions
    CALENDAR_SYNC_PAGE_SIZE: int = 250
    CALENDAR_SYNC_FALLBACK_DAYS: int = 30
    CALENDAR_SYNC_LOCK_TTL_SECONDS: int = 300
    CALENDAR_HTTP_TIMEOUT: float = 30.0
    SUGGESTIONS_USE_JOIN_QUERY: bool = True

    # Postgres pool (psycopg_pool); development overrides below
    DB_POOL_MIN_SIZE: int = 4
    DB_POOL_MAX_SIZE: int = 16
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 300.0
    DB_POOL_MAX_LIFETIME: float = 1800.0

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def jwks_url(self) -> str:
        if self.SUPABASE_JWKS_URL:
            return self.SUPABASE_JWKS_URL
        base = self.SUPABASE_URL.rstrip("/")
        return f"{base}/auth/v1/.well-known/jwks.json"

    def google_redirect_uri(self) -> str:
        if self.GOOGLE_REDIRECT_URI:
            return self.GOOGLE_REDIRECT_URI
        return f"{self.PUBLIC_API_URL.rstrip('/')}/calendar/callback/google"

    def microsoft_redirect_uri(self) -> str:
        if self.MICROSOFT_REDIRECT_URI:
            return self.MICROSOFT_REDIRECT_URI
        return f"{self.PUBLIC_API_URL.rstrip('/')}/calendar/callback/microsoft"

    def calendar_redirect_url(self, status: str, reason: str | None = None) -> str:
        """Browser landing page after an OAuth callback."""
        url = f"{self.FRONTEND_URL.rstrip('/')}/calendar?status={status}"
        if reason:
            url += f"&reason={reason}"
        return url

    def get_db_pool_config(self) -> dict:
        """Keyword arguments for AsyncConnectionPool."""
        if self.environment == "development":
            return {
                "min_size": 1,
                "max_size": 4,
                "timeout": 10.0,
                "max_idle": self.DB_POOL_MAX_IDLE,
                "max_lifetime": self.DB_POOL_MAX_LIFETIME,
            }
        return {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }


settings = Settings()
