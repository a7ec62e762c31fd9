"""Public (unauthenticated) routes: reference data and a sample of listings."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.app.responses import success_response
from agrimarket.domain.schemas import CategoryResponse, LocationResponse
from agrimarket.infra.database import get_db
from agrimarket.services import listing_service, reference_service
from agrimarket.services.serializers import serialize_listing

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/public", tags=["public"])


@router.get("/categories")
async def list_categories(db: AsyncSession = Depends(get_db)):
    categories = await reference_service.list_categories(db)
    logger.info("Public categories retrieved: count=%d", len(categories))
    return success_response([
        CategoryResponse.model_validate(c).model_dump(by_alias=True, mode="json") for c in categories
    ])


@router.get("/locations")
async def list_locations(db: AsyncSession = Depends(get_db)):
    locations = await reference_service.list_locations(db)
    logger.info("Public locations retrieved: count=%d", len(locations))
    return success_response([
        LocationResponse.model_validate(loc).model_dump(by_alias=True, mode="json") for loc in locations
    ])


@router.get("/listings")
async def list_public_listings(
    limit: int = Query(10, ge=1),
    db: AsyncSession = Depends(get_db),
):
    """Newest active listings for the landing page; the limit is capped at 20."""
    listings = await listing_service.public_listings(db, limit)
    logger.info("Public listings retrieved: count=%d", len(listings))
    return success_response([serialize_listing(listing) for listing in listings])
