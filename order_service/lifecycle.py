"""
Order lifecycle: placement, payment verification, webhook confirmation and
the admin/user query surface.

Placement is three independent steps (persist order, clear cart, open a
checkout session). A failure after the order is committed never removes the
order; the webhook and verify paths reconcile payment afterwards.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from order_service import events
from order_service.config import Settings, WebhookSettings
from order_service.errors import (
    GatewayError,
    InvalidInput,
    OrderNotFound,
    PersistenceError,
    Unauthorized,
    WebhookVerificationError,
)
from order_service.models import Order, User
from order_service.payments import StripeGateway, build_line_items
from order_service.status import (
    CANCELLABLE_STATUSES,
    CONFIRMABLE_STATUSES,
    OrderStatus,
    PaymentMethod,
    check_admin_transition,
    initial_status,
    parse_payment_method,
    parse_status,
)

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_FAILED_EVENTS = ("checkout.session.expired", "checkout.session.async_payment_failed")

TRUTHY = ("true", "1", "yes")


@dataclass
class PlacementResult:
    order: Order
    cart_cleared: bool
    cart_error: Optional[str] = None
    session_url: Optional[str] = None


@dataclass
class WebhookAck:
    status_code: int
    order_id: Optional[int] = None


def _commit(db: Session, action: str):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error while {action}: {e}")
        raise PersistenceError(f"Database error while {action}")


def _to_number(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def normalize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    label = item.get("name") or item.get("_id")
    price = _to_number(item.get("price"))
    if price is None or price < 0:
        raise InvalidInput(f"Invalid price for item {label}")

    raw_quantity = item.get("quantity")
    if raw_quantity in (None, "", 0, "0"):
        quantity = 1
    else:
        number = _to_number(raw_quantity)
        if number is None or number < 1 or not number.is_integer():
            raise InvalidInput(f"Invalid quantity for item {label}")
        quantity = int(number)

    normalized = {
        "_id": item.get("_id"),
        "name": item.get("name"),
        "price": price,
        "quantity": quantity,
    }
    if item.get("image"):
        normalized["image"] = item["image"]
    return normalized


def normalize_items(items) -> List[Dict[str, Any]]:
    if not items or not isinstance(items, list):
        raise InvalidInput("Cart is empty")
    if not all(isinstance(item, dict) for item in items):
        raise InvalidInput("Each item must be an object")
    return [normalize_item(item) for item in items]


def resolve_amount(amount, items: List[Dict[str, Any]], delivery_fee: float) -> float:
    if amount is None or amount == "":
        subtotal = sum(item["price"] * item["quantity"] for item in items)
        return subtotal + max(delivery_fee, 0)
    number = _to_number(amount)
    if number is None or number < 0:
        raise InvalidInput("Invalid order amount")
    return number


def clear_cart(db: Session, user_id: int) -> Optional[str]:
    """Returns None on success, otherwise the error text. Never raises."""
    try:
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            return f"User {user_id} not found"
        user.cartData = {}
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to clear cart for user {user_id}: {e}")
        return str(e)
    return None


def place_order(
    db: Session,
    gateway: StripeGateway,
    settings: Settings,
    user_id: Optional[int],
    items,
    amount=None,
    address: Optional[Dict[str, Any]] = None,
    payment_method: Optional[str] = None,
) -> PlacementResult:
    if not user_id:
        raise Unauthorized("Unauthorized: userId missing")

    normalized_items = normalize_items(items)
    method = parse_payment_method(payment_method)
    total = resolve_amount(amount, normalized_items, settings.delivery_fee)

    order = Order(
        userId=user_id,
        items=normalized_items,
        amount=total,
        address=address or {},
        payment=False,
        paymentMethod=method.value,
        status=initial_status(method).value,
    )
    db.add(order)
    _commit(db, "saving order")
    db.refresh(order)
    logger.info(f"Order {order.id} placed by user {user_id} ({method.value})")

    cart_error = clear_cart(db, user_id)
    if cart_error:
        logger.warning(f"Order {order.id} kept although the cart was not cleared: {cart_error}")
    events.publish_order_event(events.ORDER_PLACED, order)

    result = PlacementResult(order=order, cart_cleared=cart_error is None, cart_error=cart_error)
    if method is not PaymentMethod.STRIPE:
        return result

    line_items = build_line_items(normalized_items, settings.delivery_fee, settings.currency)
    session = gateway.create_checkout_session(
        line_items=line_items,
        success_url=f"{settings.frontend_url}/verify?success=true&orderId={order.id}",
        cancel_url=f"{settings.frontend_url}/verify?success=false&orderId={order.id}",
        metadata={"orderId": str(order.id)},
    )

    order.stripeSessionId = session.id
    _commit(db, "saving checkout session id")

    if not session.url:
        logger.error(f"Stripe session {session.id} created for order {order.id} but url is missing")
        raise GatewayError("Failed to create Stripe checkout session")

    result.session_url = session.url
    return result


def get_order(db: Session, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found")
    return order


def confirm_payment(db: Session, order: Order) -> Order:
    """
    Mark an order paid. Idempotent.

    Unpaid-stage orders (awaiting_payment, pending, cancelled) move to
    confirmed. Orders already at confirmed or a later fulfilment status keep
    it. A paid order is therefore at confirmed or beyond (processing,
    out_for_delivery, delivered), never at an unpaid-stage status.
    """
    changed = not order.payment
    order.payment = True
    if OrderStatus(order.status) in CONFIRMABLE_STATUSES:
        changed = changed or order.status != OrderStatus.CONFIRMED.value
        order.status = OrderStatus.CONFIRMED.value
    _commit(db, f"confirming payment for order {order.id}")
    if changed:
        events.publish_order_event(events.ORDER_STATUS_UPDATE, order)
    return order


def cancel_unpaid(db: Session, order: Order) -> Order:
    if order.payment:
        logger.warning(f"Order {order.id} is already paid; cancellation ignored")
        return order
    if order.status == OrderStatus.CANCELLED.value:
        return order
    if OrderStatus(order.status) not in CANCELLABLE_STATUSES:
        logger.warning(f"Order {order.id} is {order.status}; cancellation ignored")
        return order
    order.status = OrderStatus.CANCELLED.value
    _commit(db, f"cancelling order {order.id}")
    events.publish_order_event(events.ORDER_STATUS_UPDATE, order)
    return order


def is_truthy(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY


def verify_order(db: Session, order_id: Optional[int], success) -> bool:
    if not order_id:
        raise InvalidInput("orderId required")
    order = get_order(db, order_id)
    if is_truthy(success):
        confirm_payment(db, order)
        return True
    cancel_unpaid(db, order)
    return False


def _find_order_for_session(db: Session, session: Dict[str, Any]) -> Optional[Order]:
    metadata = session.get("metadata")
    order_id = metadata.get("orderId") if isinstance(metadata, dict) else None
    if order_id:
        try:
            return db.query(Order).filter(Order.id == int(order_id)).first()
        except (TypeError, ValueError):
            logger.warning(f"Webhook: ignoring malformed orderId metadata {order_id!r}")
    session_id = session.get("id")
    if session_id and isinstance(session_id, str):
        return db.query(Order).filter(Order.stripeSessionId == session_id).first()
    return None


def handle_payment_webhook(
    db: Session,
    gateway: StripeGateway,
    webhook_settings: WebhookSettings,
    payload: bytes,
    signature: Optional[str],
) -> WebhookAck:
    """
    Verification errors propagate as WebhookVerificationError (400, the
    gateway retries). Database failures give a 500 (retried). Everything
    else, including an event with no matching order, is acknowledged.
    """
    event = gateway.construct_event(payload, signature, webhook_settings)
    event_type = event.get("type")
    data = event.get("data")
    session = data.get("object") if isinstance(data, dict) else None
    if not isinstance(session, dict):
        raise WebhookVerificationError("Invalid payload: missing data.object")

    if event_type != CHECKOUT_COMPLETED and event_type not in CHECKOUT_FAILED_EVENTS:
        return WebhookAck(status_code=200)

    try:
        order = _find_order_for_session(db, session)
        if order is None:
            logger.warning(f"Webhook: {event_type} received but no matching order found.")
            return WebhookAck(status_code=200)
        if event_type == CHECKOUT_COMPLETED:
            confirm_payment(db, order)
            logger.info(f"Order {order.id} marked as paid via webhook.")
        else:
            cancel_unpaid(db, order)
            logger.info(f"Order {order.id} checkout ended without payment ({event_type}).")
    except (SQLAlchemyError, PersistenceError) as e:
        db.rollback()
        logger.error(f"Error updating order on webhook: {e}")
        return WebhookAck(status_code=500)
    return WebhookAck(status_code=200, order_id=order.id)


def _newest_first(query):
    return query.order_by(Order.createdAt.desc(), Order.id.desc())


def user_orders(db: Session, user_id: Optional[int]) -> List[Order]:
    if not user_id:
        raise Unauthorized("Unauthorized")
    try:
        return _newest_first(db.query(Order).filter(Order.userId == user_id)).all()
    except SQLAlchemyError as e:
        logger.error(f"userOrders error: {e}")
        raise PersistenceError("Error fetching orders")


def list_orders(db: Session) -> List[Order]:
    try:
        return _newest_first(db.query(Order)).all()
    except SQLAlchemyError as e:
        logger.error(f"listOrders error: {e}")
        raise PersistenceError("Error fetching orders")


def update_status(db: Session, order_id: Optional[int], status: Optional[str]) -> Order:
    if not order_id or not status:
        raise InvalidInput("orderId and status required")
    target = parse_status(status)
    order = get_order(db, order_id)
    check_admin_transition(OrderStatus(order.status), target, order.payment)
    if order.status != target.value:
        order.status = target.value
        _commit(db, f"updating status of order {order.id}")
        events.publish_order_event(events.ORDER_STATUS_UPDATE, order)
    return order
