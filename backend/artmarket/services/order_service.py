"""
Orders and payment reconciliation.

A purchase is a two-phase state machine per order:

    pending --(checkout.session.completed)--> paid (processing, artwork sold)
    pending --(checkout.session.expired | stale sweep)--> cancelled

Both transitions are conditional updates on `payment_status = pending`, so
concurrent or repeated deliveries of the same event change state at most
once. Marking the artwork sold is a second conditional update
(`status = available`) in the same transaction; losing that race means the
artwork was sold through another order and this one needs a refund.
"""

import enum
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from artmarket.core.config import settings
from artmarket.core.errors import (
    AlreadySoldError,
    ConflictError,
    ExternalServiceError,
    InternalError,
    InvalidInputError,
    NotFoundError,
)
from artmarket.core.permissions import Action, ResourceKind, ensure_allowed
from artmarket.core.security import utcnow
from artmarket.models.artwork import Artwork, ArtworkStatus
from artmarket.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from artmarket.models.user import User
from artmarket.services.notifier import NotificationKind
from artmarket.services.payments import (
    CHECKOUT_COMPLETED,
    CHECKOUT_EXPIRED,
    LineItem,
    Redirects,
    to_minor_units,
)
from artmarket.services.query_builder import QuerySpec

logger = logging.getLogger(__name__)

# Statuses an admin may move an order to
FULFILMENT_STATUSES = frozenset({
    OrderStatus.PROCESSING.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.CANCELLED.value,
})


class WebhookOutcome(str, enum.Enum):
    FULFILLED = "fulfilled"
    ALREADY_PROCESSED = "already_processed"
    ALREADY_SOLD = "already_sold"
    ORDER_NOT_FOUND = "order_not_found"
    EXPIRED = "expired"
    IGNORED = "ignored"
    FAILED = "failed"


class OrderService:
    @staticmethod
    def create_checkout_session(
        db: Session,
        artwork_id: int,
        actor: User,
        provider,
        shipping_address: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Open a provider checkout session for one artwork and record a pending order.

        Nothing is persisted if the provider call fails. If persisting the
        order fails after the session was created, the session is expired at
        the provider so no payable session is left without an order.
        """
        ensure_allowed(actor, ResourceKind.ORDER, Action.CREATE)

        artwork = (
            db.query(Artwork)
            .options(joinedload(Artwork.artist))
            .filter(Artwork.id == artwork_id)
            .first()
        )
        if not artwork:
            raise NotFoundError("Artwork not found")
        if artwork.status == ArtworkStatus.SOLD.value:
            raise AlreadySoldError()
        if artwork.status == ArtworkStatus.NOT_FOR_SALE.value:
            raise ConflictError("This artwork is not for sale")

        artist_name = artwork.artist.name if artwork.artist else "Unknown artist"
        session = provider.create_session(
            line_items=[
                LineItem(
                    name=artwork.title,
                    unit_amount=to_minor_units(artwork.price),
                    description=f"By {artist_name}",
                    image_url=artwork.image_url,
                )
            ],
            redirects=Redirects(
                success_url=f"{settings.CLIENT_URL}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{settings.CLIENT_URL}/artworks/{artwork.id}",
            ),
            customer_email=actor.email,
            client_reference_id=str(artwork.id),
        )

        order = Order(
            user_id=actor.id,
            total_amount=artwork.price,
            currency=settings.CURRENCY,
            shipping_address=shipping_address,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            stripe_session_id=session.id,
        )
        # Title, price and artist are copied so later artwork edits don't rewrite history
        order.items.append(OrderItem(
            artwork_id=artwork.id,
            artist_id=artwork.artist_id,
            title=artwork.title,
            price=artwork.price,
        ))

        try:
            db.add(order)
            db.commit()
            db.refresh(order)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Could not persist order for checkout session {session.id}: {str(e)}")
            try:
                provider.expire_session(session.id)
            except ExternalServiceError:
                logger.error(f"Checkout session {session.id} is orphaned and must be expired manually")
            raise InternalError("Could not create order")

        logger.info(f"Order {order.id} pending for artwork {artwork.id} (session {session.id})")
        return {"session_id": session.id, "url": session.url, "order": order}

    @staticmethod
    def handle_payment_webhook(
        db: Session,
        raw_body: bytes,
        signature: Optional[str],
        provider,
        notifier,
    ) -> WebhookOutcome:
        """
        Verify and apply one provider event.

        Signature failures propagate (the delivery is rejected with no state
        change). Once the signature is valid this never raises: processing
        errors are logged and rolled back so the delivery is still
        acknowledged.
        """
        event = provider.verify_and_parse_event(raw_body, signature)
        event_type = event.get("type")
        session_data = (event.get("data") or {}).get("object") or {}
        session_id = session_data.get("id")

        try:
            if event_type == CHECKOUT_COMPLETED:
                if session_data.get("payment_status", "paid") != "paid":
                    logger.info(f"Checkout session {session_id} completed without payment; waiting")
                    return WebhookOutcome.IGNORED
                return OrderService.fulfil_checkout_session(db, session_id, notifier)
            if event_type == CHECKOUT_EXPIRED:
                return OrderService.expire_checkout_session(db, session_id)
        except Exception as e:
            db.rollback()
            logger.exception(f"Error processing {event_type} for session {session_id}: {str(e)}")
            return WebhookOutcome.FAILED

        logger.info(f"Ignoring webhook event {event.get('id')} of type {event_type}")
        return WebhookOutcome.IGNORED

    @staticmethod
    def fulfil_checkout_session(db: Session, session_id: Optional[str], notifier) -> WebhookOutcome:
        """Mark the order for `session_id` paid and its artworks sold, at most once"""
        order = (
            db.query(Order)
            .options(selectinload(Order.items), joinedload(Order.user))
            .filter(Order.stripe_session_id == session_id)
            .first()
        ) if session_id else None
        if order is None:
            logger.warning(f"No order found for checkout session {session_id}; acknowledging")
            return WebhookOutcome.ORDER_NOT_FOUND

        claimed = (
            db.query(Order)
            .filter(Order.id == order.id, Order.payment_status == PaymentStatus.PENDING.value)
            .update({
                Order.payment_status: PaymentStatus.SUCCEEDED.value,
                Order.status: OrderStatus.PROCESSING.value,
                Order.paid_at: utcnow(),
            }, synchronize_session=False)
        )
        if claimed == 0:
            db.rollback()
            logger.info(f"Order {order.id} already processed; ignoring redelivery")
            return WebhookOutcome.ALREADY_PROCESSED

        for item in order.items:
            if item.artwork_id is None:
                continue
            sold = (
                db.query(Artwork)
                .filter(Artwork.id == item.artwork_id,
                        Artwork.status == ArtworkStatus.AVAILABLE.value)
                .update({Artwork.status: ArtworkStatus.SOLD.value}, synchronize_session=False)
            )
            if sold == 0:
                # Paid, but the artwork went to another buyer; release items already claimed
                db.rollback()
                recorded = (
                    db.query(Order)
                    .filter(Order.id == order.id, Order.payment_status == PaymentStatus.PENDING.value)
                    .update({
                        Order.payment_status: PaymentStatus.SUCCEEDED.value,
                        Order.status: OrderStatus.CANCELLED.value,
                        Order.paid_at: utcnow(),
                    }, synchronize_session=False)
                )
                db.commit()
                if recorded == 0:
                    logger.info(f"Order {order.id} already processed; ignoring redelivery")
                    return WebhookOutcome.ALREADY_PROCESSED
                logger.error(
                    f"Order {order.id} paid but artwork {item.artwork_id} was already sold; "
                    f"refund required for session {session_id}")
                return WebhookOutcome.ALREADY_SOLD

        db.commit()
        db.refresh(order)
        logger.info(f"Order {order.id} paid (session {session_id})")

        OrderService._send_confirmation(order, notifier)
        return WebhookOutcome.FULFILLED

    @staticmethod
    def expire_checkout_session(db: Session, session_id: Optional[str]) -> WebhookOutcome:
        """Cancel the pending order for an abandoned checkout session"""
        order = db.query(Order).filter(Order.stripe_session_id == session_id).first() if session_id else None
        if order is None:
            logger.warning(f"No order found for expired checkout session {session_id}")
            return WebhookOutcome.ORDER_NOT_FOUND

        if not OrderService._cancel_pending(db, order):
            return WebhookOutcome.ALREADY_PROCESSED
        db.commit()
        logger.info(f"Order {order.id} cancelled; checkout session {session_id} expired")
        return WebhookOutcome.EXPIRED

    @staticmethod
    def _cancel_pending(db: Session, order: Order) -> bool:
        cancelled = (
            db.query(Order)
            .filter(Order.id == order.id, Order.payment_status == PaymentStatus.PENDING.value)
            .update({
                Order.status: OrderStatus.CANCELLED.value,
                Order.payment_status: PaymentStatus.FAILED.value,
            }, synchronize_session=False)
        )
        return cancelled > 0

    @staticmethod
    def _send_confirmation(order: Order, notifier) -> None:
        if order.user is None:
            return
        sent = notifier.send(order.user.email, NotificationKind.ORDER_CONFIRMATION, {
            "order_id": order.id,
            "name": order.user.name,
            "items": [{"title": item.title, "price": item.price} for item in order.items],
            "total_amount": order.total_amount,
            "currency": order.currency,
        })
        if not sent:
            logger.warning(f"Order confirmation for order {order.id} was not delivered")

    @staticmethod
    def sweep_stale_orders(
        db: Session,
        provider,
        notifier,
        ttl_minutes: int,
        now=None,
    ) -> Dict[str, int]:
        """
        Reconcile pending orders older than `ttl_minutes`.

        Orders whose session turns out to be paid are fulfilled (their
        completion webhook was lost); the rest have their session expired and
        are cancelled. Provider failures leave the order for the next run.
        """
        cutoff = (now or utcnow()) - timedelta(minutes=ttl_minutes)
        stale = (
            db.query(Order)
            .filter(Order.payment_status == PaymentStatus.PENDING.value,
                    Order.created_at < cutoff)
            .order_by(Order.id)
            .all()
        )
        counts = {"checked": len(stale), "fulfilled": 0, "cancelled": 0, "skipped": 0}

        for order in stale:
            session_id = order.stripe_session_id
            if session_id:
                try:
                    session = provider.retrieve_session(session_id)
                except ExternalServiceError:
                    logger.warning(f"Could not check session {session_id} for order {order.id}; retrying later")
                    counts["skipped"] += 1
                    continue

                if session.is_paid:
                    outcome = OrderService.fulfil_checkout_session(db, session_id, notifier)
                    if outcome in (WebhookOutcome.FULFILLED, WebhookOutcome.ALREADY_SOLD):
                        counts["fulfilled"] += 1
                    continue

                try:
                    provider.expire_session(session_id)
                except ExternalServiceError:
                    logger.warning(f"Could not expire session {session_id}; cancelling order {order.id} anyway")

            if OrderService._cancel_pending(db, order):
                db.commit()
                counts["cancelled"] += 1
                logger.info(f"Cancelled stale order {order.id}")
            else:
                db.rollback()

        return counts

    @staticmethod
    def list_my_orders(db: Session, actor: User, spec: QuerySpec) -> List[Order]:
        query = (
            db.query(Order)
            .options(selectinload(Order.items))
            .filter(Order.user_id == actor.id)
        )
        return spec.apply(query, Order).all()

    @staticmethod
    def list_all_orders(db: Session, actor: User, spec: QuerySpec) -> List[Order]:
        ensure_allowed(actor, ResourceKind.ORDER, Action.LIST)
        query = db.query(Order).options(selectinload(Order.items), joinedload(Order.user))
        return spec.apply(query, Order).all()

    @staticmethod
    def get_order(db: Session, order_id: int, actor: User) -> Order:
        order = (
            db.query(Order)
            .options(selectinload(Order.items), joinedload(Order.user))
            .filter(Order.id == order_id)
            .first()
        )
        if not order:
            raise NotFoundError("Order not found")
        ensure_allowed(actor, ResourceKind.ORDER, Action.READ, order)
        return order

    @staticmethod
    def update_order_status(
        db: Session,
        order_id: int,
        new_status: str,
        actor: User,
        provider,
    ) -> Order:
        """Move an order through fulfilment (admin)"""
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("No order found with that ID")
        ensure_allowed(actor, ResourceKind.ORDER, Action.UPDATE, order)

        if new_status not in FULFILMENT_STATUSES:
            raise InvalidInputError(
                f"Invalid order status. Allowed: {', '.join(sorted(FULFILMENT_STATUSES))}")

        if not order.is_paid:
            if new_status != OrderStatus.CANCELLED.value:
                raise ConflictError("Only paid orders can be moved to fulfilment")
            if order.stripe_session_id:
                try:
                    provider.expire_session(order.stripe_session_id)
                except ExternalServiceError:
                    logger.warning(f"Could not expire session {order.stripe_session_id} for order {order.id}")
            if order.payment_status == PaymentStatus.PENDING.value:
                order.payment_status = PaymentStatus.FAILED.value

        order.status = new_status
        db.commit()
        db.refresh(order)
        logger.info(f"Order {order.id} status changed to {new_status} by user {actor.id}")
        return order


order_service = OrderService()
