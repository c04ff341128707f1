import enum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from artmarket.core.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Order(Base):
    """
    Purchase of one or more artworks.

    Created as pending when a checkout session is opened; payment fields are
    only changed by payment reconciliation (webhook or stale-order sweep).
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    # Kept nullable so order history survives a hard user delete
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    # {"street", "city", "state", "postal_code", "country"}
    shipping_address = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    payment_method = Column(String(20), nullable=False, default="stripe")
    payment_status = Column(String(20), nullable=False,
                            default=PaymentStatus.PENDING.value, index=True)
    stripe_session_id = Column(String(255), unique=True, nullable=True, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User")
    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan")

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.SUCCEEDED.value


class OrderItem(Base):
    """Line item; title, price and artist are snapshotted at order time"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    artwork_id = Column(Integer, ForeignKey("artworks.id", ondelete="SET NULL"), nullable=True, index=True)
    artist_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    artwork = relationship("Artwork")
