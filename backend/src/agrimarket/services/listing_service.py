"""Listing store: farmer-owned produce listings and buyer-side queries.

Ownership is enforced inside the mutating statement itself (an UPDATE filtered
on both id and farmer_id), so a check-then-write race between two farmers
cannot slip through. A missing row and a row owned by someone else produce the
same NOT_FOUND.
"""

import logging
import math
from dataclasses import dataclass

from sqlalchemy import Select, and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agrimarket.domain.errors import NotFound, ValidationFailed
from agrimarket.domain.models import Category, Interaction, ProduceListing, utcnow
from agrimarket.domain.schemas import ListingCreate, ListingFilters, ListingUpdate
from agrimarket.infra.gateway import commit, translated

logger = logging.getLogger(__name__)

PUBLIC_LISTING_CAP = 20
BUYER_LIMIT_CAP = 50
OWNER_RECENT_INTERACTIONS = 5

# Sentinel values the marketplace UI sends for "no filter"
ALL_COUNTIES = "all-counties"
ALL_CROPS = "all-crops"

OWNERSHIP_ERROR = "Listing not found or access denied"


@dataclass
class Page:
    """One page of query results plus pagination metadata."""

    rows: list
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total > 0 else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


def _newest_first(query: Select) -> Select:
    return query.order_by(ProduceListing.created_at.desc(), ProduceListing.id.desc())


def _with_refs(query: Select) -> Select:
    return query.options(
        selectinload(ProduceListing.farmer),
        selectinload(ProduceListing.category),
    )


async def _check_category(db: AsyncSession, category_id: str | None) -> None:
    if category_id is None:
        return
    found = await db.scalar(
        select(Category.id).where(Category.id == category_id, Category.is_active.is_(True))
    )
    if not found:
        raise ValidationFailed.for_field("categoryId", "Unknown category", "unknown_reference")


async def get_listing(db: AsyncSession, listing_id: str) -> ProduceListing | None:
    result = await db.execute(
        _with_refs(select(ProduceListing))
        .where(ProduceListing.id == listing_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Farmer operations
# ---------------------------------------------------------------------------


async def create_listing(db: AsyncSession, farmer_id: str, data: ListingCreate) -> ProduceListing:
    await _check_category(db, data.category_id)
    listing = ProduceListing(
        farmer_id=farmer_id,
        crop_type=data.crop_type.strip(),
        quantity=data.quantity,
        unit=data.unit.strip(),
        price_per_unit=data.price_per_unit,
        harvest_date=data.harvest_date,
        location=data.location.strip(),
        description=data.description,
        category_id=data.category_id,
        is_active=True,
    )
    db.add(listing)
    await commit(db)
    logger.info("Farmer listing created: farmer=%s listing=%s crop=%s", farmer_id, listing.id, listing.crop_type)
    return await get_listing(db, listing.id)


async def list_own_listings(db: AsyncSession, farmer_id: str) -> list[tuple[ProduceListing, list[Interaction]]]:
    """All of a farmer's listings, active or not, each with its latest interactions."""
    result = await db.execute(
        _newest_first(_with_refs(select(ProduceListing)).where(ProduceListing.farmer_id == farmer_id))
    )
    listings = list(result.scalars().all())
    if not listings:
        return []

    # Rank interactions per listing and keep the newest few
    rank = (
        func.row_number()
        .over(
            partition_by=Interaction.listing_id,
            order_by=(Interaction.created_at.desc(), Interaction.id.desc()),
        )
        .label("rank")
    )
    ranked = (
        select(Interaction.id, rank)
        .where(Interaction.listing_id.in_([listing.id for listing in listings]))
        .subquery()
    )
    recent = await db.execute(
        select(Interaction)
        .options(selectinload(Interaction.buyer))
        .join(ranked, ranked.c.id == Interaction.id)
        .where(ranked.c.rank <= OWNER_RECENT_INTERACTIONS)
        .order_by(Interaction.created_at.desc(), Interaction.id.desc())
    )
    by_listing: dict[str, list[Interaction]] = {listing.id: [] for listing in listings}
    for interaction in recent.scalars().all():
        by_listing[interaction.listing_id].append(interaction)

    logger.info("Farmer listings retrieved: farmer=%s count=%d", farmer_id, len(listings))
    return [(listing, by_listing[listing.id]) for listing in listings]


async def update_listing(
    db: AsyncSession,
    listing_id: str,
    farmer_id: str,
    patch: ListingUpdate,
) -> ProduceListing:
    changes = patch.changes()
    if "category_id" in changes:
        await _check_category(db, changes["category_id"])
    if "crop_type" in changes:
        changes["crop_type"] = changes["crop_type"].strip()

    changes["updated_at"] = utcnow()
    async with translated(db):
        result = await db.execute(
            update(ProduceListing)
            .where(ProduceListing.id == listing_id, ProduceListing.farmer_id == farmer_id)
            .values(**changes)
        )
    if result.rowcount != 1:
        await db.rollback()
        raise NotFound(OWNERSHIP_ERROR)
    await commit(db)

    logger.info(
        "Farmer listing updated: farmer=%s listing=%s fields=%s",
        farmer_id,
        listing_id,
        sorted(k for k in changes if k != "updated_at"),
    )
    return await get_listing(db, listing_id)


async def soft_delete_listing(db: AsyncSession, listing_id: str, farmer_id: str) -> None:
    result = await db.execute(
        update(ProduceListing)
        .where(ProduceListing.id == listing_id, ProduceListing.farmer_id == farmer_id)
        .values(is_active=False, updated_at=utcnow())
    )
    if result.rowcount != 1:
        await db.rollback()
        raise NotFound(OWNERSHIP_ERROR)
    await commit(db)
    logger.info("Farmer listing deleted: farmer=%s listing=%s", farmer_id, listing_id)


# ---------------------------------------------------------------------------
# Buyer / public queries
# ---------------------------------------------------------------------------


def _filter_conditions(filters: ListingFilters) -> list:
    """Translate coerced filters into SQL conditions. Active-only is added by callers."""
    conditions = []

    if filters.search:
        term = filters.search.strip()
        conditions.append(
            or_(
                ProduceListing.crop_type.icontains(term, autoescape=True),
                ProduceListing.description.icontains(term, autoescape=True),
                ProduceListing.location.icontains(term, autoescape=True),
            )
        )
    if filters.county and filters.county != ALL_COUNTIES:
        conditions.append(ProduceListing.location == filters.county)
    if filters.location_contains:
        conditions.append(ProduceListing.location.icontains(filters.location_contains.strip(), autoescape=True))
    if filters.crop_type and filters.crop_type != ALL_CROPS:
        conditions.append(ProduceListing.crop_type == filters.crop_type)
    if filters.crop_type_contains:
        conditions.append(ProduceListing.crop_type.icontains(filters.crop_type_contains.strip(), autoescape=True))
    if filters.category_id:
        conditions.append(ProduceListing.category_id == filters.category_id)
    if filters.min_price is not None:
        conditions.append(ProduceListing.price_per_unit >= filters.min_price)
    if filters.max_price is not None:
        conditions.append(ProduceListing.price_per_unit <= filters.max_price)
    if filters.harvest_date_from is not None:
        conditions.append(ProduceListing.harvest_date >= filters.harvest_date_from)
    if filters.harvest_date_to is not None:
        conditions.append(ProduceListing.harvest_date <= filters.harvest_date_to)

    return conditions


async def query_listings(
    db: AsyncSession,
    filters: ListingFilters,
    page: int = 1,
    limit: int = 10,
    max_limit: int = BUYER_LIMIT_CAP,
) -> Page:
    """Buyer-facing paginated search. Soft-deleted rows are never returned."""
    limit = min(limit, max_limit)
    where = and_(ProduceListing.is_active.is_(True), *_filter_conditions(filters))

    total = await db.scalar(select(func.count(ProduceListing.id)).where(where)) or 0

    result = await db.execute(
        _newest_first(_with_refs(select(ProduceListing)).where(where))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = list(result.scalars().all())

    logger.info(
        "Buyer listings retrieved: count=%d page=%d total=%d filters=%s",
        len(rows),
        page,
        total,
        filters.model_dump(exclude_none=True, mode="json"),
    )
    return Page(rows=rows, page=page, limit=limit, total=total)


async def public_listings(db: AsyncSession, limit: int = 10) -> list[ProduceListing]:
    """Newest active listings for unauthenticated visitors, at most 20."""
    limit = max(1, min(limit, PUBLIC_LISTING_CAP))
    result = await db.execute(
        _newest_first(_with_refs(select(ProduceListing)).where(ProduceListing.is_active.is_(True))).limit(limit)
    )
    return list(result.scalars().all())
