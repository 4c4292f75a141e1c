from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class PlaceOrderRequest(BaseModel):
    # Item fields stay loosely typed so bad prices surface as InvalidInput.
    # Shape errors (items not a list, address not an object) get the same
    # 400 envelope from the app's validation handler.
    userId: Optional[int] = None
    items: Optional[List[Dict[str, Any]]] = None
    amount: Optional[Any] = None
    address: Optional[Dict[str, Any]] = None
    paymentMethod: Optional[str] = None


class VerifyOrderRequest(BaseModel):
    orderId: Optional[int] = None
    success: Optional[Any] = None


class UserOrdersRequest(BaseModel):
    userId: Optional[int] = None


class UpdateStatusRequest(BaseModel):
    orderId: Optional[int] = None
    status: Optional[str] = None


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    userId: int
    items: List[Dict[str, Any]]
    amount: float
    address: Dict[str, Any]
    payment: bool
    paymentMethod: str
    status: str
    createdAt: datetime
    stripeSessionId: Optional[str] = None


class MessageResponse(BaseModel):
    success: bool
    message: str


class OrderListResponse(BaseModel):
    success: bool = True
    data: List[OrderResponse]
