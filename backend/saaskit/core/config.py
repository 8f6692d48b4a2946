"""
Application Configuration
Loads settings from environment variables using Pydantic Settings.
"""
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # Application
    APP_NAME: str = "SaaSKit"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    UVICORN_PORT: int = 8000
    API_PREFIX: str = "/api"

    # Auth backend (tokens emitidos pelo identity provider)
    AUTH_JWT_SECRET: str
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_AUDIENCE: Optional[str] = None
    AUTH_JWT_ISSUER: Optional[str] = None
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Database
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 0
    DATABASE_ECHO: bool = False
    DB_AUTO_CREATE: bool = False
    SEED_PLANS_ON_STARTUP: bool = True

    # Workspaces
    INVITATION_EXPIRE_DAYS: int = 7
    PERSONAL_WORKSPACE_NAME: str = "Personal"
    WORKSPACE_HEADER: str = "X-Workspace-Id"
    WORKSPACE_COOKIE: str = "currentWorkspaceId"

    # Frontend
    FRONTEND_URL: str = "http://localhost:3000"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"
    ALLOWED_HOSTS: List[str] = ["localhost", "127.0.0.1"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = ""  # vazio = backend/logs
    BILLING_LOG_LEVEL: str = "INFO"  # webhook/reconciliacao Stripe

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_PUBLISHABLE_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300

    # Stripe catalog (price ids usados para resolver price -> plan)
    STRIPE_PRO_PRODUCT_ID: str = ""
    STRIPE_PRO_MONTHLY_PRICE_ID: str = ""
    STRIPE_PRO_YEARLY_PRICE_ID: str = ""
    STRIPE_ENTERPRISE_PRODUCT_ID: str = ""
    STRIPE_ENTERPRISE_MONTHLY_PRICE_ID: str = ""
    STRIPE_ENTERPRISE_YEARLY_PRICE_ID: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_sqlite(self) -> bool:
        """SQLite (aiosqlite) nao aceita pool_size/max_overflow."""
        return self.DATABASE_URL.startswith("sqlite")


# Singleton instance
settings = Settings()
