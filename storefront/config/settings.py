from typing import Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):

    DATABASE_URL: str
    DB_ECHO: bool = False

    # signing secret for the shopper session cookie , every sign/verify path refuses to run without it
    USER_SESSION_SECRET: Optional[str] = None
    SESSION_COOKIE_NAME: str = "ss-storefront-session"
    SESSION_TTL_DAYS: int = 30

    STOREFRONT_ORIGIN: str = "http://localhost:3000"
    MAX_LINE_QUANTITY: int = 1000
    STOCK_RESERVATION_TTL_MINUTES: int = 30

    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300

    TABBY_API_BASE: str = "https://api.tabby.ai"
    # checkout sessions authenticate with the public key , payment reads and captures with the secret key
    TABBY_PUBLIC_KEY: Optional[str] = None
    TABBY_SECRET_KEY: Optional[str] = None
    TABBY_MERCHANT_CODE: Optional[str] = None

    PROVIDER_TIMEOUT_SECONDS: float = 10.0
    PROVIDER_READ_RETRIES: int = 3

    EXCHANGE_RATES_URL: str = "https://open.er-api.com/v6/latest/AED"
    EXCHANGE_RATES_TTL_SECONDS: int = 3600
    EXCHANGE_RATES_TIMEOUT_SECONDS: float = 5.0

    class Config:
        env_file = ".env"
        extra="ignore"

config_settings = Settings()
