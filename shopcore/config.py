from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./shopcore.db"
    env: str = "local"
    log_level: str = "INFO"

    # Paystack
    paystack_secret_key: str = ""
    paystack_base_url: str = "https://api.paystack.co"
    payment_currency: str = "NGN"
    payment_callback_url: str = "http://localhost:8000/payments/callback"
    payment_min_amount: float = 100.0

    gateway_timeout: float = 12.0
    gateway_max_retries: int = 2
    gateway_backoff_base: float = 0.5

    # Checkout
    shipping_fee: float = 750.0
    delivery_days: int = 5

    cart_cache_ttl: int = 30
    cart_cache_maxsize: int = 1024

    reconcile_after_minutes: int = 15

    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"

settings = Settings()
