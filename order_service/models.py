from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String

from order_service.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Order(Base):
    __tablename__ = 'orders'
    id = Column(Integer, primary_key=True, index=True)
    userId = Column(Integer, nullable=False, index=True)
    items = Column(JSON, nullable=False, default=list)
    amount = Column(Float, nullable=False)
    address = Column(JSON, nullable=False, default=dict)
    payment = Column(Boolean, nullable=False, default=False)
    paymentMethod = Column(String, nullable=False, default="stripe")
    status = Column(String, nullable=False)  # see status.OrderStatus
    createdAt = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updatedAt = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    stripeSessionId = Column(String, nullable=True, index=True)


class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    cartData = Column(JSON, nullable=False, default=dict)  # product id -> quantity
