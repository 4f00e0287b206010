"""Wishlist pipeline data models — closed enums and collaborator payloads."""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class EventType(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    VIEW = "view"
    CLICK = "click"
    CART = "cart"
    PURCHASE = "purchase"
    SHARE = "share"


class NotificationType(str, Enum):
    PRICE_DROP = "price_drop"
    BACK_IN_STOCK = "back_in_stock"
    PROMOTIONAL = "promotional"
    REMINDER = "reminder"
    SHARE_NOTIFICATION = "share_notification"
    ESTIMATE_REQUEST = "estimate_request"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (
    NotificationStatus.SENT,
    NotificationStatus.FAILED,
    NotificationStatus.CANCELLED,
)


class ItemStatus(str, Enum):
    ACTIVE = "active"
    PURCHASED = "purchased"
    DELETED = "deleted"


class Product(BaseModel):
    """Live product snapshot returned by a product lookup."""
    id: int
    name: str
    price: Optional[float] = None  # None when the store reports no usable price
    in_stock: bool = True
    permalink: Optional[str] = None
