from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Local durable store (catalog cache, shifts, sales, cart, outbox)
    DATABASE_URL: str = "sqlite:///./kenpos.db"
    SECRET_KEY: str = "dev-insecure-key-change-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    # Redis / Celery (background sync sweep)
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # Remote ledger
    LEDGER_BASE_URL: str = "http://localhost:8080/api"
    LEDGER_API_TOKEN: str = ""
    SYNC_TIMEOUT_SECONDS: float = 10.0
    SYNC_MAX_ATTEMPTS: int = 3
    SYNC_BACKOFF_BASE_SECONDS: float = 0.5
    SYNC_BACKOFF_MAX_SECONDS: float = 30.0

    # Tax
    VAT_ENABLED: bool = True
    VAT_RATE: Decimal = Decimal("16")  # percent
    DEFAULT_PRICING_TYPE: str = "inclusive"

    # Discounts
    DISCOUNT_ENABLED: bool = True
    DISCOUNT_TYPE: str = "percentage"
    DISCOUNT_MAX_VALUE: Decimal = Decimal("20")

    # Loyalty
    LOYALTY_ENABLED: bool = True
    LOYALTY_POINTS_PER_UNIT: Decimal = Decimal("100")  # 1 point per 100 spent
    LOYALTY_REDEMPTION_RATE: Decimal = Decimal("0.5")  # 1 point = 0.50
    LOYALTY_MIN_REDEEMABLE_POINTS: int = 100
    LOYALTY_MAX_REDEMPTION_PERCENTAGE: Decimal = Decimal("30")

    WALK_IN_CUSTOMER_ID: str = "cust001"
    INVOICE_PREFIX: str = "INV-"


settings = Settings()
