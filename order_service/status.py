from enum import Enum
from typing import Dict, FrozenSet

from order_service.errors import InvalidInput, InvalidTransition


class OrderStatus(str, Enum):
    AWAITING_PAYMENT = "awaiting_payment"   # stripe orders until the checkout completes
    PENDING = "pending"                     # cod / none orders
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    STRIPE = "stripe"
    COD = "cod"
    NONE = "none"


ADMIN_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.AWAITING_PAYMENT: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# A paid order may never land on one of these.
UNPAID_STATUSES = frozenset({OrderStatus.AWAITING_PAYMENT, OrderStatus.PENDING, OrderStatus.CANCELLED})

# Payment confirmation lifts these to CONFIRMED; later statuses are kept.
CONFIRMABLE_STATUSES = UNPAID_STATUSES

# Payment failure cancels only orders still waiting on payment.
CANCELLABLE_STATUSES = frozenset({OrderStatus.AWAITING_PAYMENT, OrderStatus.PENDING})


def initial_status(method: PaymentMethod) -> OrderStatus:
    return OrderStatus.AWAITING_PAYMENT if method is PaymentMethod.STRIPE else OrderStatus.PENDING


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidInput(f"Unknown status '{value}'. Expected one of: {allowed}")


def parse_payment_method(value) -> PaymentMethod:
    if value is None or value == "":
        return PaymentMethod.STRIPE
    try:
        return PaymentMethod(str(value).strip().lower())
    except ValueError:
        raise InvalidInput(f"Unsupported payment method '{value}'")


def check_admin_transition(current: OrderStatus, target: OrderStatus, paid: bool) -> None:
    """Raise InvalidTransition unless an admin may move an order from current to target."""
    if current == target:
        return
    if paid and target in UNPAID_STATUSES:
        raise InvalidTransition(f"Order is paid and cannot be moved to {target.value}")
    if target not in ADMIN_TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot change status from {current.value} to {target.value}")
