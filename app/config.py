from typing import List, Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Domain Publisher"
    APP_ENV: str = "development"
    API_V1_STR: str = "/api/v1"

    # Database
    DATABASE_URL: Optional[str] = None
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "domain_publisher"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800  # 30 minutes
    DB_ECHO: bool = False
    SLOW_QUERY_THRESHOLD_MS: int = 500

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # Stripe webhooks
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE: int = 300  # seconds

    # Name.com registrar
    NAMECOM_API_URL: str = "https://api.name.com/v4"
    NAMECOM_USERNAME: str = ""
    NAMECOM_API_TOKEN: str = ""

    # Cloudflare DNS / SSL
    CLOUDFLARE_API_URL: str = "https://api.cloudflare.com/client/v4"
    CLOUDFLARE_API_TOKEN: str = ""
    CLOUDFLARE_ACCOUNT_ID: str = ""
    CNAME_TARGET_HOST: str = "personas.example-host.app"

    # External call budget
    PROVIDER_TIMEOUT_SECONDS: float = 20.0
    PROVIDER_RETRY_ATTEMPTS: int = 4
    PROVIDER_RETRY_MIN_WAIT: float = 1.0
    PROVIDER_RETRY_MAX_WAIT: float = 16.0
    PRICE_TOLERANCE_PERCENT: float = 5.0   # allowed drift between quote and purchase

    # Provisioning
    PROVISIONING_ASYNC: bool = False       # dispatch advance() through Celery instead of inline
    STATUS_POLL_INTERVAL_SECONDS: int = 300
    PROCESSING_LEASE_SECONDS: int = 900    # durable per-order claim; must outlast one full advance()
    RECONCILE_STALE_SECONDS: int = 120     # poller leaves recently touched orders to their current worker

    # Pricing
    PRICE_MARKUP_PERCENT: float = 30.0
    USD_TO_HKD_RATE: float = 7.8

    # Domain routing
    ROUTER_BYPASS_HOSTS: str = "localhost,127.0.0.1,::1"
    ROUTER_BYPASS_PATH_PREFIXES: str = "/api/,/assets/,/health,/docs,/openapi.json,/@"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _validate_production_credentials(self) -> "Settings":
        """Block startup if provider credentials are missing in production / staging."""
        if self.APP_ENV in ("production", "staging"):
            missing = [
                name
                for name in (
                    "STRIPE_WEBHOOK_SECRET",
                    "NAMECOM_USERNAME",
                    "NAMECOM_API_TOKEN",
                    "CLOUDFLARE_API_TOKEN",
                    "CLOUDFLARE_ACCOUNT_ID",
                )
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(
                    f"Missing required settings for {self.APP_ENV}: {', '.join(missing)}"
                )
            if self.POSTGRES_PASSWORD in ("postgres", "") and not self.DATABASE_URL:
                raise ValueError(
                    "POSTGRES_PASSWORD is set to default 'postgres'. "
                    "Set a strong password in .env or environment."
                )
        return self

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}/{self.POSTGRES_DB}"
        )

    @property
    def router_bypass_hosts(self) -> List[str]:
        return [h.strip().lower() for h in self.ROUTER_BYPASS_HOSTS.split(",") if h.strip()]

    @property
    def router_bypass_path_prefixes(self) -> List[str]:
        return [p.strip() for p in self.ROUTER_BYPASS_PATH_PREFIXES.split(",") if p.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_staging(self) -> bool:
        return self.APP_ENV == "staging"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

settings = Settings()
