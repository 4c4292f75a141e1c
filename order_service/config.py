import os
from enum import Enum
from typing import Optional

from pydantic import BaseModel, model_validator

# Environment Variables
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./orders.db")

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
WEBHOOK_MODE = os.getenv("WEBHOOK_MODE", "")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
DELIVERY_FEE = float(os.getenv("DELIVERY_FEE", "80"))
CURRENCY = os.getenv("CURRENCY", "lkr")

JWT_SECRET = os.getenv("JWT_SECRET", "MY_SECRET_KEY")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

RABBITMQ_HOST = os.getenv("RABBITMQ_HOST", "rabbitmq")
RABBITMQ_USER = os.getenv("RABBITMQ_USER", "appuser")
RABBITMQ_PASS = os.getenv("RABBITMQ_PASS", "securepassword123")
ORDER_EVENTS_ENABLED = os.getenv("ORDER_EVENTS_ENABLED", "false").lower() == "true"

CHECKOUT_TTL_MINUTES = int(os.getenv("CHECKOUT_TTL_MINUTES", "0"))
EXPIRY_INTERVAL_SECONDS = int(os.getenv("EXPIRY_INTERVAL_SECONDS", "300"))

PORT = int(os.getenv("PORT", "8004"))


class WebhookMode(str, Enum):
    STRICT = "strict"
    # Trusts the raw payload. Development only.
    PERMISSIVE = "permissive"


class WebhookSettings(BaseModel):
    mode: WebhookMode = WebhookMode.PERMISSIVE
    signing_secret: Optional[str] = None

    @model_validator(mode="after")
    def strict_needs_secret(self):
        if self.mode is WebhookMode.STRICT and not self.signing_secret:
            raise ValueError("strict webhook mode requires a signing secret")
        return self


class Settings(BaseModel):
    stripe_secret_key: str = ""
    frontend_url: str = "http://localhost:5173"
    delivery_fee: float = 80.0
    currency: str = "lkr"
    webhook: WebhookSettings = WebhookSettings()


def load_webhook_settings(secret: str = STRIPE_WEBHOOK_SECRET, mode: str = WEBHOOK_MODE) -> WebhookSettings:
    """
    Strict whenever a signing secret exists, unless a mode is given explicitly.
    Asking for strict mode without a secret is a configuration error.
    """
    if mode:
        resolved = WebhookMode(mode.lower())
    else:
        resolved = WebhookMode.STRICT if secret else WebhookMode.PERMISSIVE
    if resolved is WebhookMode.STRICT and not secret:
        raise ValueError("WEBHOOK_MODE=strict requires STRIPE_WEBHOOK_SECRET")
    return WebhookSettings(mode=resolved, signing_secret=secret or None)


def load_settings() -> Settings:
    return Settings(
        stripe_secret_key=STRIPE_SECRET_KEY,
        frontend_url=FRONTEND_URL.rstrip("/"),
        delivery_fee=DELIVERY_FEE,
        currency=CURRENCY,
        webhook=load_webhook_settings(),
    )
