"""Farmer and buyer dashboards.

Each dashboard composes several independent reads; no cross-query consistency
is promised.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agrimarket.domain.models import Interaction, ProduceListing
from agrimarket.domain.schemas import PreferencesResponse
from agrimarket.services import interaction_service, preference_service
from agrimarket.services.serializers import (
    serialize_interaction,
    serialize_listing,
)

logger = logging.getLogger(__name__)

RECENT_INTERACTIONS = 10
TOP_LISTINGS = 5


async def farmer_dashboard(db: AsyncSession, farmer_id: str) -> dict:
    # Listing counts by active flag
    result = await db.execute(
        select(ProduceListing.is_active, func.count(ProduceListing.id))
        .where(ProduceListing.farmer_id == farmer_id)
        .group_by(ProduceListing.is_active)
    )
    by_flag = {bool(row[0]): row[1] for row in result.fetchall()}
    active = by_flag.get(True, 0)
    inactive = by_flag.get(False, 0)

    recent = await interaction_service.recent_interactions(
        db, farmer_id=farmer_id, limit=RECENT_INTERACTIONS
    )
    by_type = await interaction_service.counts_by_type(db, farmer_id=farmer_id)

    # Top active listings by interaction count
    interaction_count = func.count(Interaction.id).label("interaction_count")
    top_result = await db.execute(
        select(ProduceListing, interaction_count)
        .options(selectinload(ProduceListing.category), selectinload(ProduceListing.farmer))
        .outerjoin(Interaction, Interaction.listing_id == ProduceListing.id)
        .where(ProduceListing.farmer_id == farmer_id, ProduceListing.is_active.is_(True))
        .group_by(ProduceListing.id)
        .order_by(interaction_count.desc(), ProduceListing.created_at.desc(), ProduceListing.id.desc())
        .limit(TOP_LISTINGS)
    )
    top_listings = [
        {**serialize_listing(listing), "interactionCount": count}
        for listing, count in top_result.all()
    ]

    logger.info("Farmer dashboard data retrieved: farmer=%s", farmer_id)
    return {
        "stats": {
            "totalListings": active + inactive,
            "activeListings": active,
            "inactiveListings": inactive,
            "totalInteractions": sum(by_type.values()),
            "interactionsByType": by_type,
        },
        "recentInteractions": [
            serialize_interaction(i, include_listing=True, include_buyer=True) for i in recent
        ],
        "topListings": top_listings,
    }


async def buyer_dashboard(db: AsyncSession, buyer_id: str) -> dict:
    recent = await interaction_service.recent_interactions(
        db, buyer_id=buyer_id, limit=RECENT_INTERACTIONS
    )
    preferences = await preference_service.get_preferences(db, buyer_id)
    by_type = await interaction_service.counts_by_type(db, buyer_id=buyer_id)
    by_listing = await interaction_service.counts_by_listing(db, buyer_id=buyer_id)

    logger.info("Buyer dashboard data retrieved: buyer=%s", buyer_id)
    return {
        "recentInteractions": [
            serialize_interaction(i, include_listing=True, include_farmer=True) for i in recent
        ],
        "preferences": (
            PreferencesResponse.model_validate(preferences).model_dump(by_alias=True, mode="json")
            if preferences
            else None
        ),
        "stats": {
            "totalInteractions": sum(by_type.values()),
            "interactionsByType": by_type,
            "interactionsByListing": by_listing,
        },
    }
