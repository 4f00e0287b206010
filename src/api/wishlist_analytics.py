"""Wishlist analytics API — event ingestion + admin reporting."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.auth import require_admin
from src.db.engine import get_session
from src.models.wishlist import EventType
from src.services.catalog import build_product_lookup
from src.services.wishlist_analytics import POPULAR_ORDER_FIELDS, WishlistAnalytics

logger = logging.getLogger(__name__)
router = APIRouter()


class WishlistEventPayload(BaseModel):
    product_id: int = Field(..., ge=1)
    variation_id: int = Field(0, ge=0)
    event_type: EventType


@router.post("/api/v1/wishlist/events", status_code=202)
async def track_wishlist_event(payload: WishlistEventPayload, session: AsyncSession = Depends(get_session)):
    """Record one wishlist event (add, remove, view, click, cart, purchase, share)."""
    analytics = WishlistAnalytics(session)
    if not await analytics.track_event(payload.product_id, payload.variation_id, payload.event_type):
        raise HTTPException(422, "Event not recorded")
    return {"status": "accepted"}


# --- Admin Reporting ---

@router.get("/api/v1/admin/wishlist-analytics/overview")
async def analytics_overview(admin=Depends(require_admin), session: AsyncSession = Depends(get_session)):
    return await WishlistAnalytics(session).get_overview()


@router.get("/api/v1/admin/wishlist-analytics/funnel")
async def analytics_funnel(admin=Depends(require_admin), session: AsyncSession = Depends(get_session)):
    return await WishlistAnalytics(session).get_conversion_funnel()


@router.get("/api/v1/admin/wishlist-analytics/popular")
async def popular_products(
    limit: int = Query(10, ge=1, le=100),
    order_by: str = Query("wishlist_count", description=f"One of: {', '.join(POPULAR_ORDER_FIELDS)}"),
    admin=Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Top wishlisted products, enriched with live product data."""
    analytics = WishlistAnalytics(session, products=build_product_lookup(session))
    products = await analytics.get_popular_products(limit=limit, order_by=order_by)
    return {"products": products, "count": len(products)}


@router.get("/api/v1/admin/wishlist-analytics/products/{product_id}")
async def product_analytics(
    product_id: int,
    variation_id: int = Query(0, ge=0),
    admin=Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    data = await WishlistAnalytics(session).get_product_analytics(product_id, variation_id)
    if data is None:
        raise HTTPException(404, "No analytics for this product")
    return data


@router.post("/api/v1/admin/wishlist-analytics/recalculate")
async def recalculate_analytics(admin=Depends(require_admin), session: AsyncSession = Depends(get_session)):
    """Reconcile wishlist counts against live items. Safe to run repeatedly."""
    result = await WishlistAnalytics(session).recalculate_all()
    return {"updated": result.updated, "errors": result.errors}
