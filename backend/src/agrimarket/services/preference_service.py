"""Preference store: one row per buyer with saved filters and bookmarks."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.domain.errors import Conflict
from agrimarket.domain.models import UserPreference, utcnow
from agrimarket.infra.gateway import commit

logger = logging.getLogger(__name__)


async def get_preferences(db: AsyncSession, user_id: str) -> UserPreference | None:
    result = await db.execute(select(UserPreference).where(UserPreference.user_id == user_id))
    return result.scalar_one_or_none()


async def upsert_preferences(
    db: AsyncSession,
    user_id: str,
    search_filters: dict | None,
    saved_listings: list[str],
) -> UserPreference:
    """Create the row if absent, replace its contents if present.

    ``search_filters`` is stored exactly as given.
    """
    preference = await get_preferences(db, user_id)
    if preference is None:
        preference = UserPreference(user_id=user_id)
        db.add(preference)
    preference.search_filters = search_filters
    preference.saved_listings = list(saved_listings)
    preference.updated_at = utcnow()

    try:
        await commit(db)
    except Conflict:
        # A concurrent first save created the row; retry as an update
        preference = await get_preferences(db, user_id)
        if preference is None:
            raise
        preference.search_filters = search_filters
        preference.saved_listings = list(saved_listings)
        preference.updated_at = utcnow()
        await commit(db)

    logger.info("Buyer preferences saved: user=%s saved=%d", user_id, len(saved_listings))
    return preference
