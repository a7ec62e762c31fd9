"""Interaction log: append-only buyer engagement events and their aggregates."""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agrimarket.domain.enums import InteractionType
from agrimarket.domain.errors import ListingInactive, NotFound
from agrimarket.domain.models import Interaction, ProduceListing
from agrimarket.infra.gateway import commit

logger = logging.getLogger(__name__)


def listing_for_interaction(listing_id: str):
    """Owner and status of a listing, row-locked until the interaction commits.

    A soft delete cannot land between the active check and the insert. SQLite
    ignores ``FOR UPDATE`` and serializes writers instead.
    """
    return (
        select(ProduceListing.farmer_id, ProduceListing.is_active)
        .where(ProduceListing.id == listing_id)
        .with_for_update()
    )


async def record_interaction(
    db: AsyncSession,
    buyer_id: str,
    listing_id: str,
    interaction_type: InteractionType,
    metadata: dict | None = None,
) -> Interaction:
    """Append an interaction; the listing's owner is copied onto the row."""
    listing = (await db.execute(listing_for_interaction(listing_id))).one_or_none()
    if listing is None:
        raise NotFound("Listing not found")
    if not listing.is_active:
        raise ListingInactive()

    interaction = Interaction(
        buyer_id=buyer_id,
        farmer_id=listing.farmer_id,
        listing_id=listing_id,
        type=interaction_type.value,
        meta=metadata,
    )
    db.add(interaction)
    await commit(db)

    logger.info(
        "Buyer interaction logged: buyer=%s listing=%s type=%s id=%s",
        buyer_id,
        listing_id,
        interaction_type.value,
        interaction.id,
    )
    return interaction


async def recent_interactions(
    db: AsyncSession,
    *,
    buyer_id: str | None = None,
    farmer_id: str | None = None,
    limit: int = 10,
) -> list[Interaction]:
    query = select(Interaction).options(
        selectinload(Interaction.listing),
        selectinload(Interaction.buyer),
        selectinload(Interaction.farmer),
    )
    if buyer_id is not None:
        query = query.where(Interaction.buyer_id == buyer_id)
    if farmer_id is not None:
        query = query.where(Interaction.farmer_id == farmer_id)
    result = await db.execute(
        query.order_by(Interaction.created_at.desc(), Interaction.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def counts_by_type(
    db: AsyncSession,
    *,
    buyer_id: str | None = None,
    farmer_id: str | None = None,
) -> dict[str, int]:
    """Interaction counts grouped by type. Absent types are omitted."""
    query = select(Interaction.type, func.count(Interaction.id)).group_by(Interaction.type)
    if buyer_id is not None:
        query = query.where(Interaction.buyer_id == buyer_id)
    if farmer_id is not None:
        query = query.where(Interaction.farmer_id == farmer_id)
    result = await db.execute(query)
    return {row[0]: row[1] for row in result.fetchall()}


async def counts_by_listing(
    db: AsyncSession,
    *,
    buyer_id: str | None = None,
    farmer_id: str | None = None,
) -> dict[str, int]:
    query = select(Interaction.listing_id, func.count(Interaction.id)).group_by(Interaction.listing_id)
    if buyer_id is not None:
        query = query.where(Interaction.buyer_id == buyer_id)
    if farmer_id is not None:
        query = query.where(Interaction.farmer_id == farmer_id)
    result = await db.execute(query)
    return {row[0]: row[1] for row in result.fetchall()}
