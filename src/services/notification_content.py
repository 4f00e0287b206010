"""Notification email templates.

Pure mapping from (notification type, context) to a subject and a plain-text
body. Content is rendered once, when the notification is queued, so later
product changes never rewrite a pending email.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from src.models.wishlist import NotificationType


@dataclass(frozen=True)
class EmailContent:
    subject: str
    content: str


def _text(context: Mapping[str, Any], key: str, default: str = "") -> str:
    value = context.get(key)
    if value is None:
        return default
    return str(value)


def _price(context: Mapping[str, Any], key: str) -> str:
    value = context.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{value:.2f}"
    return _text(context, key)


def _count(context: Mapping[str, Any], key: str) -> int:
    try:
        return int(context.get(key) or 0)
    except (TypeError, ValueError):
        return 0


def _price_drop(ctx: Mapping[str, Any]) -> EmailContent:
    name = _text(ctx, "product_name", "Product")
    return EmailContent(
        subject=f"Price Drop Alert: {name}",
        content=(
            "Good news! A product in your wishlist has dropped in price.\n\n"
            f"\nProduct: {name}"
            f"\nOld Price: {_price(ctx, 'old_price')}"
            f"\nNew Price: {_price(ctx, 'new_price')}\n\n"
            f"\nView Product: {_text(ctx, 'product_url')}"
        ),
    )


def _back_in_stock(ctx: Mapping[str, Any]) -> EmailContent:
    name = _text(ctx, "product_name", "Product")
    return EmailContent(
        subject=f"Back in Stock: {name}",
        content=(
            "Great news! A product in your wishlist is back in stock.\n\n"
            f"\nProduct: {name}\n\n"
            f"\nView Product: {_text(ctx, 'product_url')}"
        ),
    )


def _promotional(ctx: Mapping[str, Any]) -> EmailContent:
    return EmailContent(
        subject=_text(ctx, "subject", "Special Offer on Your Wishlist"),
        content=_text(ctx, "message"),
    )


def _reminder(ctx: Mapping[str, Any]) -> EmailContent:
    item_count = _count(ctx, "item_count")
    wishlist_name = _text(ctx, "wishlist_name", "Your Wishlist")
    return EmailContent(
        subject=f"Reminder: You have {item_count} items in your wishlist",
        content=(
            "Hi there,\n\n\n\n"
            f"Just a friendly reminder that you have {item_count} items waiting "
            f'in your wishlist "{wishlist_name}".\n\n'
            f"\nView Your Wishlist: {_text(ctx, 'wishlist_url')}"
        ),
    )


def _share_notification(ctx: Mapping[str, Any]) -> EmailContent:
    shared_by = _text(ctx, "shared_by", "Someone")
    wishlist_name = _text(ctx, "wishlist_name", "a wishlist")
    content = f'Hi,\n\n\n\n{shared_by} has shared a wishlist with you: "{wishlist_name}"'
    message = _text(ctx, "message")
    if message:
        content += f"\n\nMessage:\n{message}"
    content += f"\n\nView Wishlist:\n{_text(ctx, 'wishlist_url')}"
    return EmailContent(subject=f"{shared_by} shared {wishlist_name} with you", content=content)


def _estimate_request(ctx: Mapping[str, Any]) -> EmailContent:
    return EmailContent(
        subject=_text(ctx, "subject", "Wishlist Estimate Request"),
        content=_text(ctx, "message"),
    )


_TEMPLATES = {
    NotificationType.PRICE_DROP: _price_drop,
    NotificationType.BACK_IN_STOCK: _back_in_stock,
    NotificationType.PROMOTIONAL: _promotional,
    NotificationType.REMINDER: _reminder,
    NotificationType.SHARE_NOTIFICATION: _share_notification,
    NotificationType.ESTIMATE_REQUEST: _estimate_request,
}


def render_footer(site_name: str) -> str:
    return f"\n\n---\nThis email was sent by {site_name}"


def generate_email_content(
    notification_type: NotificationType,
    context: Mapping[str, Any] | None,
    site_name: str,
) -> EmailContent:
    """Render subject + body for a notification. Deterministic, no side effects."""
    rendered = _TEMPLATES[NotificationType(notification_type)](context or {})
    return EmailContent(
        subject=rendered.subject,
        content=rendered.content + render_footer(site_name),
    )
