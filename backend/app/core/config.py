# core/config.py
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ────────────────────────────────
    # 1. APP & ENVIRONMENT
    # ────────────────────────────────
    PROJECT_NAME: str = "Storefront Payments"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    STORE_NAME: str = "Standard Ecom"

    # Public base URL of the storefront; request origin is used when empty
    APP_BASE_URL: Optional[str] = Field(
        default=None,
        description="Base URL the gateway calls back / redirects to (e.g. https://shop.example.com)"
    )
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # ────────────────────────────────
    # 2. FIREBASE / FIRESTORE
    # ────────────────────────────────
    FIREBASE_KEY: Optional[str] = Field(
        default=None,
        description="Base64-encoded Firebase service account JSON"
    )

    # ────────────────────────────────
    # 3. MOOLRE (payments + SMS)
    # ────────────────────────────────
    MOOLRE_BASE_URL: str = "https://api.moolre.com"
    MOOLRE_API_USER: Optional[str] = None
    MOOLRE_API_PUBKEY: Optional[str] = None
    MOOLRE_ACCOUNT_NUMBER: Optional[str] = None
    MOOLRE_MERCHANT_EMAIL: str = "admin@standardecom.com"
    MOOLRE_CURRENCY: str = "GHS"
    MOOLRE_CALLBACK_SECRET: Optional[str] = None
    MOOLRE_SMS_API_KEY: Optional[str] = None
    SMS_SENDER_ID: str = "MyStore"

    # Redirect back to /order-success is not proof of payment on its own.
    # Leave off unless the gateway status API is unavailable.
    TRUST_REDIRECT_FALLBACK: bool = False

    # ────────────────────────────────
    # 4. EMAIL (Resend)
    # ────────────────────────────────
    RESEND_API_KEY: Optional[str] = None
    EMAIL_FROM: str = "Standard Ecom <orders@standardecom.com>"

    # ────────────────────────────────
    # 5. reCAPTCHA v3
    # ────────────────────────────────
    # Verification passes through when no secret is configured
    RECAPTCHA_SECRET_KEY: Optional[str] = None
    RECAPTCHA_VERIFY_URL: str = "https://www.google.com/recaptcha/api/siteverify"
    RECAPTCHA_MIN_SCORE: float = 0.5

    # ────────────────────────────────
    # 6. TASK QUEUE (Celery)
    # ────────────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # ────────────────────────────────
    # 7. CRON / REMINDERS
    # ────────────────────────────────
    CRON_SECRET: Optional[str] = None
    PAYMENT_REMINDER_DELAY_MINUTES: int = 15
    PAYMENT_REMINDER_BATCH_SIZE: int = 50

    @property
    def moolre_configured(self) -> bool:
        return bool(self.MOOLRE_API_USER and self.MOOLRE_API_PUBKEY and self.MOOLRE_ACCOUNT_NUMBER)


# Create singleton
settings = Settings()
