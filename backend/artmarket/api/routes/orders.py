from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from pydantic import BaseModel
from artmarket.core.database import get_db
from artmarket.models.user import User
from artmarket.api.dependencies import get_current_user, get_notifier, get_payment_provider, get_query_spec
from artmarket.api.schemas import OrderResponse, collection, serialize, success
from artmarket.services.order_service import order_service
from artmarket.services.query_builder import QuerySpec

router = APIRouter(prefix="/orders", tags=["orders"])


class CheckoutRequest(BaseModel):
    shipping_address: Optional[Dict[str, Any]] = None


class OrderStatusUpdate(BaseModel):
    status: str


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    provider=Depends(get_payment_provider),
    notifier=Depends(get_notifier)
):
    """
    Payment provider webhook.

    The signature covers the exact bytes sent, so the body is read raw and
    never re-serialized. Invalid signatures get a 400; once verified the
    event is always acknowledged so the provider stops retrying.
    """
    raw_body = await request.body()
    outcome = await run_in_threadpool(
        order_service.handle_payment_webhook, db, raw_body, stripe_signature, provider, notifier)
    return {"received": True, "outcome": outcome.value}


@router.post("/checkout-session/{artwork_id}")
def create_checkout_session(
    artwork_id: int,
    payload: Optional[CheckoutRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider=Depends(get_payment_provider)
):
    """Start checkout for an artwork; the client redirects to the returned url"""
    shipping_address = payload.shipping_address if payload else None
    result = order_service.create_checkout_session(
        db, artwork_id, current_user, provider, shipping_address=shipping_address)
    return {
        "status": "success",
        "session_id": result["session_id"],
        "url": result["url"],
        "data": {"order": serialize(OrderResponse, result["order"])},
    }


@router.get("/my-orders")
async def my_orders(
    spec: QuerySpec = Depends(get_query_spec),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    orders = order_service.list_my_orders(db, current_user, spec)
    return collection("orders", OrderResponse, orders, spec)


@router.get("/")
async def list_orders(
    spec: QuerySpec = Depends(get_query_spec),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List all orders (admin)"""
    orders = order_service.list_all_orders(db, current_user, spec)
    return collection("orders", OrderResponse, orders, spec)


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """A single order (its buyer or admin)"""
    order = order_service.get_order(db, order_id, current_user)
    return success(order=serialize(OrderResponse, order))


@router.patch("/{order_id}")
def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider=Depends(get_payment_provider)
):
    """Move an order through fulfilment (admin)"""
    order = order_service.update_order_status(db, order_id, payload.status, current_user, provider)
    return success(order=serialize(OrderResponse, order))
