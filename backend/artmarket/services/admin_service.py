from decimal import Decimal
from typing import Any, Dict
from sqlalchemy import func
from sqlalchemy.orm import Session
from artmarket.core.permissions import Action, ResourceKind, ensure_allowed
from artmarket.models.artwork import Artwork, ArtworkStatus
from artmarket.models.order import Order, PaymentStatus
from artmarket.models.user import User


class AdminService:
    @staticmethod
    def dashboard_stats(db: Session, actor: User) -> Dict[str, Any]:
        """Headline counts for the admin dashboard"""
        ensure_allowed(actor, ResourceKind.DASHBOARD, Action.READ)

        user_count = db.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar()
        artwork_count = db.query(func.count(Artwork.id)).scalar()
        sold_count = (
            db.query(func.count(Artwork.id))
            .filter(Artwork.status == ArtworkStatus.SOLD.value)
            .scalar()
        )
        order_count = db.query(func.count(Order.id)).scalar()
        revenue = (
            db.query(func.coalesce(func.sum(Order.total_amount), 0))
            .filter(Order.payment_status == PaymentStatus.SUCCEEDED.value)
            .scalar()
        )

        return {
            "user_count": user_count,
            "artwork_count": artwork_count,
            "sold_artwork_count": sold_count,
            "order_count": order_count,
            "revenue": Decimal(str(revenue)),
        }


admin_service = AdminService()
