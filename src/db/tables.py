"""SQLAlchemy ORM models for the wishlist pipeline database."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    """Naive UTC timestamp — the storage convention for every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class WishlistRow(Base):
    __tablename__ = "wishlists"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True, index=True)
    user_email = Column(String(200), nullable=True)
    name = Column(String(200), nullable=False, default="Wishlist")
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime, default=utcnow, index=True)


class WishlistItemRow(Base):
    __tablename__ = "wishlist_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wishlist_id = Column(Integer, ForeignKey("wishlists.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, nullable=False)
    variation_id = Column(Integer, nullable=False, default=0)
    original_price = Column(Float, nullable=True)  # last observed price, moves down on each drop
    status = Column(String(20), nullable=False, default="active")  # active, purchased, deleted
    date_added = Column(DateTime, default=utcnow)
    date_added_to_cart = Column(DateTime, nullable=True)
    last_stock_status = Column(Boolean, nullable=True)  # None = never observed

    __table_args__ = (
        Index("ix_items_product", "product_id", "variation_id"),
        Index("ix_items_wishlist_status", "wishlist_id", "status"),
    )


class ProductRow(Base):
    """Local catalogue mirror, used when no store API is configured."""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String(500), nullable=False)
    price = Column(Float, nullable=False, default=0.0)
    in_stock = Column(Boolean, nullable=False, default=True)
    permalink = Column(String(2000), nullable=True)


class WishlistAnalyticsRow(Base):
    """One row per product + variation — aggregate wishlist counters."""
    __tablename__ = "wishlist_analytics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, nullable=False)
    variation_id = Column(Integer, nullable=False, default=0)

    wishlist_count = Column(Integer, nullable=False, default=0)
    click_count = Column(Integer, nullable=False, default=0)
    add_to_cart_count = Column(Integer, nullable=False, default=0)
    purchase_count = Column(Integer, nullable=False, default=0)
    share_count = Column(Integer, nullable=False, default=0)

    average_days_in_wishlist = Column(Float, nullable=False, default=0.0)
    conversion_rate = Column(Float, nullable=False, default=0.0)

    first_added_date = Column(DateTime, nullable=True)
    last_added_date = Column(DateTime, nullable=True)
    last_purchased_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        UniqueConstraint("product_id", "variation_id", name="uq_analytics_product_variation"),
    )


class NotificationRow(Base):
    """Outbound email notification — rendered at enqueue time."""
    __tablename__ = "wishlist_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True, index=True)
    wishlist_id = Column(Integer, nullable=True)
    product_id = Column(Integer, nullable=True)

    notification_type = Column(String(30), nullable=False)
    email_to = Column(String(200), nullable=False)
    email_subject = Column(String(500), nullable=False)
    email_content = Column(Text, nullable=False)
    trigger_data = Column(JSON, nullable=True)

    scheduled_date = Column(DateTime, nullable=False, default=utcnow)
    sent_date = Column(DateTime, nullable=True)
    opened_date = Column(DateTime, nullable=True)
    clicked_date = Column(DateTime, nullable=True)

    status = Column(String(20), nullable=False, default="pending")
    attempts = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        Index("ix_notifications_queue", "status", "scheduled_date"),
        Index("ix_notifications_dedup", "user_id", "product_id", "notification_type", "created_at"),
    )
