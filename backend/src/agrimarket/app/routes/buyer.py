"""Buyer routes: browse and search listings, preferences, interactions, dashboard.

Every route requires an authenticated BUYER. Soft-deleted listings are never
returned from here.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agrimarket.app.audit_hooks import queue_audit
from agrimarket.app.responses import success_response
from agrimarket.app.routes.auth import ensure_self, require_role
from agrimarket.domain.enums import AuditAction, UserRole
from agrimarket.domain.models import User
from agrimarket.domain.schemas import (
    InteractionCreate,
    InteractionResponse,
    ListingFilters,
    PreferencesResponse,
    PreferencesUpsert,
)
from agrimarket.infra.database import get_db, get_session_factory
from agrimarket.services import (
    dashboard_service,
    interaction_service,
    listing_service,
    preference_service,
)
from agrimarket.services.listing_service import Page
from agrimarket.services.serializers import serialize_listing

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/buyer", tags=["buyer"])

require_buyer = require_role(UserRole.BUYER)


def _pagination(page: Page) -> dict:
    return {
        "page": page.page,
        "limit": page.limit,
        "total": page.total,
        "totalPages": page.total_pages,
        "hasNext": page.has_next,
        "hasPrev": page.has_prev,
    }


def _filters(**values) -> ListingFilters:
    # Query strings arrive as text; the model coerces and range-checks them
    return ListingFilters.model_validate({k: v for k, v in values.items() if v not in (None, "")})


@router.get("/listings")
async def browse_listings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = Query(None),
    location: str | None = Query(None),
    crop: str | None = Query(None),
    category_id: str | None = Query(None, alias="categoryId"),
    min_price: float | None = Query(None, alias="minPrice"),
    max_price: float | None = Query(None, alias="maxPrice"),
    user: User = Depends(require_buyer),
    db: AsyncSession = Depends(get_db),
):
    """Active listings, newest first, with exact-match county and crop filters."""
    filters = _filters(
        search=search,
        county=location,
        cropType=crop,
        categoryId=category_id,
        minPrice=min_price,
        maxPrice=max_price,
    )
    result = await listing_service.query_listings(db, filters, page=page, limit=limit)
    return success_response({
        "listings": [serialize_listing(listing) for listing in result.rows],
        "pagination": _pagination(result),
    })


@router.get("/listings/search")
async def search_listings(
    query: str | None = Query(None),
    location: str | None = Query(None),
    crop_type: str | None = Query(None, alias="cropType"),
    category_id: str | None = Query(None, alias="categoryId"),
    min_price: float | None = Query(None, alias="minPrice"),
    max_price: float | None = Query(None, alias="maxPrice"),
    harvest_date_from: str | None = Query(None, alias="harvestDateFrom"),
    harvest_date_to: str | None = Query(None, alias="harvestDateTo"),
    page: int = Query(1, ge=1),
    limit: int = Query(listing_service.BUYER_LIMIT_CAP, ge=1, le=100),
    user: User = Depends(require_buyer),
    db: AsyncSession = Depends(get_db),
):
    """Advanced search: substring matches on location and crop, price and harvest bounds."""
    filters = _filters(
        search=query,
        locationContains=location,
        cropTypeContains=crop_type,
        categoryId=category_id,
        minPrice=min_price,
        maxPrice=max_price,
        harvestDateFrom=harvest_date_from,
        harvestDateTo=harvest_date_to,
    )
    result = await listing_service.query_listings(db, filters, page=page, limit=limit)
    logger.info("Buyer search completed: count=%d total=%d", len(result.rows), result.total)
    return success_response({
        "listings": [serialize_listing(listing) for listing in result.rows],
        "total": result.total,
        "pagination": _pagination(result),
    })


@router.get("/preferences")
async def get_preferences(
    user_id: str | None = Query(None, alias="userId"),
    user: User = Depends(require_buyer),
    db: AsyncSession = Depends(get_db),
):
    ensure_self(user_id, user, "userId")
    preferences = await preference_service.get_preferences(db, user.id)
    logger.info("Buyer preferences retrieved: user=%s", user.id)
    if preferences is None:
        return success_response({})
    return success_response(PreferencesResponse.model_validate(preferences).model_dump(by_alias=True, mode="json"))


@router.post("/preferences")
async def save_preferences(
    data: PreferencesUpsert,
    request: Request,
    background: BackgroundTasks,
    user: User = Depends(require_buyer),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    ensure_self(data.user_id, user, "userId")
    preferences = await preference_service.upsert_preferences(
        db, user.id, data.search_filters, data.saved_listings
    )
    payload = PreferencesResponse.model_validate(preferences).model_dump(by_alias=True, mode="json")
    queue_audit(
        background, session_factory, request, AuditAction.SAVE_PREFERENCES, "preferences",
        user_id=user.id, resource_id=preferences.id,
        body=data.model_dump(by_alias=True, mode="json"), response_body=payload,
    )
    return success_response(payload, background=background)


@router.post("/interactions", status_code=201)
async def record_interaction(
    data: InteractionCreate,
    request: Request,
    background: BackgroundTasks,
    user: User = Depends(require_buyer),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    ensure_self(data.buyer_id, user, "buyerId")
    interaction = await interaction_service.record_interaction(
        db, user.id, data.listing_id, data.type, data.metadata
    )
    payload = InteractionResponse.model_validate(interaction).model_dump(by_alias=True, mode="json")
    queue_audit(
        background, session_factory, request, AuditAction.RECORD_INTERACTION, "interaction",
        user_id=user.id, resource_id=interaction.id, status_code=201,
        body=data.model_dump(by_alias=True, mode="json"), response_body=payload,
    )
    return success_response(payload, status_code=201, background=background)


@router.get("/dashboard")
async def buyer_dashboard(
    buyer_id: str | None = Query(None, alias="buyerId"),
    user: User = Depends(require_buyer),
    db: AsyncSession = Depends(get_db),
):
    ensure_self(buyer_id, user, "buyerId")
    return success_response(await dashboard_service.buyer_dashboard(db, user.id))
