import logging
from functools import lru_cache
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from order_service import config, lifecycle
from order_service.auth import get_token_user_id, resolve_user_id
from order_service.config import Settings, load_settings
from order_service.database import Base, engine, get_db
from order_service.errors import OrderServiceError, WebhookVerificationError
from order_service.payments import StripeGateway
from order_service.scheduler import start_scheduler
from order_service.schemas import (
    OrderListResponse,
    OrderResponse,
    PlaceOrderRequest,
    UpdateStatusRequest,
    UserOrdersRequest,
    VerifyOrderRequest,
)

# Configure Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Order Service")


@lru_cache()
def get_settings() -> Settings:
    return load_settings()


def get_gateway(settings: Settings = Depends(get_settings)) -> StripeGateway:
    return StripeGateway(settings.stripe_secret_key)


def serialize_order(order) -> dict:
    return OrderResponse.model_validate(order).model_dump(mode="json")


@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies are InvalidInput too: 400 with the structured envelope.
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid {field}: {first.get('msg')}" if field else f"Invalid request: {first.get('msg')}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@app.post("/order/place")
def place_order(
    body: PlaceOrderRequest,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    result = lifecycle.place_order(
        db,
        gateway,
        settings,
        user_id=resolve_user_id(token_user_id, body.userId),
        items=body.items,
        amount=body.amount,
        address=body.address,
        payment_method=body.paymentMethod,
    )
    if result.session_url is None:
        return JSONResponse(status_code=201, content={
            "success": True,
            "order": serialize_order(result.order),
            "message": "Order placed (no online payment required).",
        })
    return {"success": True, "session_url": result.session_url}


@app.post("/order/verify")
@app.post("/order/mark-paid")
def verify_order(body: VerifyOrderRequest, db: Session = Depends(get_db)):
    if lifecycle.verify_order(db, body.orderId, body.success):
        return {"success": True, "message": "Paid"}
    return {"success": False, "message": "Not Paid"}


@app.post("/order/webhook")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        ack = await run_in_threadpool(
            lifecycle.handle_payment_webhook, db, gateway, settings.webhook, payload, signature
        )
    except WebhookVerificationError as e:
        logger.error(f"Webhook signature verification failed: {e.message}")
        return PlainTextResponse(f"Webhook Error: {e.message}", status_code=400)
    if ack.status_code != 200:
        return PlainTextResponse("", status_code=ack.status_code)
    return {"received": True}


@app.post("/order/userorders", response_model=OrderListResponse)
def user_orders(
    body: Optional[UserOrdersRequest] = None,
    token_user_id: Optional[int] = Depends(get_token_user_id),
    db: Session = Depends(get_db),
):
    body_user_id = body.userId if body else None
    orders = lifecycle.user_orders(db, resolve_user_id(token_user_id, body_user_id))
    return OrderListResponse(data=[OrderResponse.model_validate(o) for o in orders])


# TODO: guard /order/list and /order/status with an admin role check once tokens carry roles.
@app.get("/order/list", response_model=OrderListResponse)
def list_orders(db: Session = Depends(get_db)):
    orders = lifecycle.list_orders(db)
    return OrderListResponse(data=[OrderResponse.model_validate(o) for o in orders])


@app.post("/order/status")
def update_status(body: UpdateStatusRequest, db: Session = Depends(get_db)):
    lifecycle.update_status(db, body.orderId, body.status)
    return {"success": True, "message": "Status Updated"}


@app.get("/health")
def health():
    return {"status": "ok"}


@app.on_event("startup")
def startup():
    get_settings()  # fail fast on a bad webhook configuration
    Base.metadata.create_all(bind=engine)
    app.state.scheduler = start_scheduler()


@app.on_event("shutdown")
def shutdown():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
