import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from order_service import config
from order_service.database import SessionLocal
from order_service.errors import PersistenceError
from order_service.lifecycle import cancel_unpaid
from order_service.models import Order
from order_service.status import OrderStatus

logger = logging.getLogger(__name__)


def expire_stale_checkouts(db: Session, ttl: timedelta, now: datetime = None) -> int:
    """Cancel unpaid stripe orders whose checkout has been open longer than ttl."""
    now = now or datetime.now(timezone.utc)
    # SQLite hands back naive datetimes; compare in naive UTC.
    cutoff = (now - ttl).replace(tzinfo=None)
    stale = db.query(Order).filter(
        Order.status == OrderStatus.AWAITING_PAYMENT.value,
        Order.payment == False,  # noqa: E712
    ).all()
    expired = 0
    for order in stale:
        created = order.createdAt
        if created.tzinfo is not None:
            created = created.astimezone(timezone.utc).replace(tzinfo=None)
        if created < cutoff:
            cancel_unpaid(db, order)
            expired += 1
            logger.info(f"Order {order.id} cancelled: checkout expired")
    return expired


# Periodic job to cancel abandoned checkouts
def scheduled_checkout_expiry():
    db = SessionLocal()
    try:
        expire_stale_checkouts(db, timedelta(minutes=config.CHECKOUT_TTL_MINUTES))
    except (SQLAlchemyError, PersistenceError) as e:
        logger.error(f"Error in scheduled_checkout_expiry: {e}")
    finally:
        db.close()


def start_scheduler():
    if config.CHECKOUT_TTL_MINUTES <= 0:
        return None
    scheduler = BackgroundScheduler()
    scheduler.add_job(scheduled_checkout_expiry, 'interval', seconds=config.EXPIRY_INTERVAL_SECONDS)
    scheduler.start()
    logger.info(f"Checkout expiry job scheduled every {config.EXPIRY_INTERVAL_SECONDS}s")
    return scheduler
