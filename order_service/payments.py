"""
Stripe hosted checkout client.

Creates checkout sessions for placed orders and authenticates webhook
deliveries. Amounts are sent in the currency's smallest unit.
"""
import json
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

import stripe

from order_service.config import WebhookMode, WebhookSettings
from order_service.errors import GatewayError, WebhookVerificationError

logger = logging.getLogger(__name__)

DELIVERY_LINE_NAME = "Delivery Charges"


@dataclass
class CheckoutSession:
    id: str
    url: Optional[str]


def to_minor_units(amount: float) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_line_items(items: List[Dict[str, Any]], delivery_fee: float, currency: str) -> List[Dict[str, Any]]:
    """One line item per normalized order item, plus delivery when the fee is positive."""
    line_items = [
        {
            "price_data": {
                "currency": currency,
                "product_data": {"name": item.get("name") or "Item"},
                "unit_amount": to_minor_units(item["price"]),
            },
            "quantity": item["quantity"],
        }
        for item in items
    ]
    if delivery_fee > 0:
        line_items.append({
            "price_data": {
                "currency": currency,
                "product_data": {"name": DELIVERY_LINE_NAME},
                "unit_amount": to_minor_units(delivery_fee),
            },
            "quantity": 1,
        })
    return line_items


class StripeGateway:
    def __init__(self, secret_key: str):
        self.secret_key = secret_key

    def create_checkout_session(
        self,
        line_items: List[Dict[str, Any]],
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> CheckoutSession:
        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                payment_method_types=["card"],
                line_items=line_items,
                mode="payment",
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session creation failed: {e}")
            raise GatewayError(f"Failed to create Stripe checkout session: {e}")
        return CheckoutSession(id=session.id, url=session.url)

    def construct_event(self, payload: bytes, signature: Optional[str], settings: WebhookSettings) -> Dict[str, Any]:
        """
        Authenticate and decode a webhook delivery.

        In permissive mode the payload is trusted as-is.
        """
        if settings.mode is WebhookMode.STRICT:
            if not signature:
                raise WebhookVerificationError("Missing Stripe-Signature header")
            try:
                stripe.WebhookSignature.verify_header(
                    payload.decode("utf-8", errors="replace"),
                    signature,
                    settings.signing_secret,
                    tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
                )
            except stripe.SignatureVerificationError as e:
                raise WebhookVerificationError(str(e))
        else:
            logger.warning("Webhook signature not verified (permissive mode)")

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise WebhookVerificationError(f"Invalid payload: {e}")
        if not isinstance(event, dict):
            raise WebhookVerificationError("Invalid payload: expected a JSON object")
        return event
