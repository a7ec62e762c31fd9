"""Farmer routes: own listings (create, list, update, soft-delete) and dashboard.

Ownership is taken from the access token. A ``farmerId`` in the body or query
is accepted for compatibility but must name the caller.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agrimarket.app.audit_hooks import queue_audit
from agrimarket.app.responses import success_response
from agrimarket.app.routes.auth import ensure_self, require_role
from agrimarket.domain.enums import AuditAction, UserRole
from agrimarket.domain.errors import NotFound
from agrimarket.domain.models import User
from agrimarket.domain.schemas import ListingCreate, ListingDelete, ListingUpdate
from agrimarket.infra.database import get_db, get_session_factory
from agrimarket.services import dashboard_service, listing_service
from agrimarket.services.serializers import serialize_listing, serialize_owner_listing

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/farmer", tags=["farmer"])

require_farmer = require_role(UserRole.FARMER)


def _owner_hint(claimed_id: str | None, user: User) -> None:
    # Someone else's id is indistinguishable from a missing listing
    if claimed_id is not None and claimed_id != user.id:
        raise NotFound(listing_service.OWNERSHIP_ERROR)


@router.get("/listings")
async def list_own_listings(
    farmer_id: str | None = Query(None, alias="farmerId"),
    user: User = Depends(require_farmer),
    db: AsyncSession = Depends(get_db),
):
    ensure_self(farmer_id, user, "farmerId")
    rows = await listing_service.list_own_listings(db, user.id)
    return success_response([serialize_owner_listing(listing, recent) for listing, recent in rows])


@router.post("/listings", status_code=201)
async def create_listing(
    data: ListingCreate,
    request: Request,
    background: BackgroundTasks,
    user: User = Depends(require_farmer),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    ensure_self(data.farmer_id, user, "farmerId")
    listing = await listing_service.create_listing(db, user.id, data)
    payload = serialize_listing(listing)
    queue_audit(
        background, session_factory, request, AuditAction.CREATE_LISTING, "listing",
        user_id=user.id, resource_id=listing.id, status_code=201,
        body=data.model_dump(by_alias=True, mode="json"), response_body=payload,
    )
    return success_response(payload, status_code=201, background=background)


@router.put("/listings/{listing_id}")
async def update_listing(
    listing_id: str,
    data: ListingUpdate,
    request: Request,
    background: BackgroundTasks,
    user: User = Depends(require_farmer),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    _owner_hint(data.farmer_id, user)
    listing = await listing_service.update_listing(db, listing_id, user.id, data)
    payload = serialize_listing(listing)
    queue_audit(
        background, session_factory, request, AuditAction.UPDATE_LISTING, "listing",
        user_id=user.id, resource_id=listing_id,
        body=data.model_dump(by_alias=True, mode="json", exclude_unset=True), response_body=payload,
    )
    return success_response(payload, background=background)


@router.delete("/listings/{listing_id}")
async def delete_listing(
    listing_id: str,
    request: Request,
    background: BackgroundTasks,
    data: ListingDelete | None = None,
    user: User = Depends(require_farmer),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    _owner_hint(data.farmer_id if data else None, user)
    await listing_service.soft_delete_listing(db, listing_id, user.id)
    payload = {"message": "Listing deleted successfully"}
    queue_audit(
        background, session_factory, request, AuditAction.DELETE_LISTING, "listing",
        user_id=user.id, resource_id=listing_id, response_body=payload,
    )
    return success_response(payload, background=background)


@router.get("/dashboard")
async def farmer_dashboard(
    farmer_id: str | None = Query(None, alias="farmerId"),
    user: User = Depends(require_farmer),
    db: AsyncSession = Depends(get_db),
):
    ensure_self(farmer_id, user, "farmerId")
    return success_response(await dashboard_service.farmer_dashboard(db, user.id))
