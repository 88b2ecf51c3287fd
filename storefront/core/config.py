"""
Application configuration using pydantic-settings.
All environment variables are loaded from .env file with sensible defaults.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    APP_NAME: str = "Storefront Payments Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_PREFIX: str = "/api/v1"
    SEED_DEMO_DATA: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./storefront.db"

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_ENABLED: bool = False  # Disable by default for easy local dev

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:3001",
    ]

    # Admin API Security
    ADMIN_API_KEY: str = "storefront-dev-key"

    # PIX payments
    PAYMENT_EXPIRATION_SECONDS: int = 1800  # 30 minutes
    PIX_KEY_TYPE: str = "random"  # email, cpf, phone, random
    PIX_KEY_VALUE: str = "pix-key-here"
    PIX_MERCHANT_NAME: str = "Discord Storefront Bot"
    PIX_MERCHANT_CITY: str = "Sao Paulo"
    QR_PLACEHOLDER_URL: str = "https://i.imgur.com/placeholder-qr.png"

    # Promotions
    PROMOTION_TYPES: list[str] = ["flash", "season", "combo", "limited"]
    DISCOUNT_MIN: float = 5.0
    DISCOUNT_MAX: float = 50.0
    PROMOTIONS_CACHE_TTL: int = 300

    # Loyalty points
    LOYALTY_EXPIRATION_DAYS: int = 90
    LOYALTY_CONVERSION_RATE: float = 0.01  # 1 point = R$ 0.01

    # Audit retention windows (seconds)
    AUDIT_RETENTION_CRITICAL: int = 157680000  # 5 years
    AUDIT_RETENTION_ERROR: int = 63072000  # 2 years
    AUDIT_RETENTION_WARNING: int = 31536000  # 1 year
    AUDIT_RETENTION_INFO: int = 15768000  # 6 months

    # Catalog, recommendations and assistant caches
    PRODUCTS_CACHE_TTL: int = 300
    RECOMMENDATION_CACHE_TTL: int = 1800
    ASSISTANT_CACHE_TTL: int = 86400
    ACTIVITY_HISTORY_LIMIT: int = 100

    # LZT Market (external marketplace sync)
    LZT_ENABLED: bool = False
    LZT_API_KEY: str = ""
    LZT_API_SECRET: str = ""
    LZT_BASE_URL: str = "https://api.lzt.market/v1"
    LZT_TIMEOUT_SECONDS: float = 30.0

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance to avoid re-reading .env on every call."""
    return Settings()
