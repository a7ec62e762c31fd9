"""Reference data: crop categories and administrative locations."""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.domain.models import Category, Location

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: list[tuple[str, str]] = [
    ("Cereals", "Maize, wheat, rice, barley, and other grain crops"),
    ("Vegetables", "Tomatoes, onions, cabbages, kales, and other vegetables"),
    ("Fruits", "Bananas, oranges, mangoes, avocados, and other fruits"),
    ("Legumes", "Beans, peas, lentils, and other leguminous crops"),
    ("Root Tubers", "Potatoes, sweet potatoes, cassava, and other root crops"),
]

DEFAULT_LOCATIONS: list[tuple[str, str]] = [
    ("Nairobi", "Central Kenya"),
    ("Kiambu", "Central Kenya"),
    ("Murang'a", "Central Kenya"),
    ("Nyeri", "Central Kenya"),
    ("Kirinyaga", "Central Kenya"),
    ("Nakuru", "Rift Valley"),
    ("Uasin Gishu", "Rift Valley"),
    ("Trans Nzoia", "Rift Valley"),
    ("Meru", "Eastern Kenya"),
    ("Embu", "Eastern Kenya"),
    ("Machakos", "Eastern Kenya"),
    ("Kisumu", "Western Kenya"),
    ("Kakamega", "Western Kenya"),
]


async def list_categories(db: AsyncSession) -> list[Category]:
    result = await db.execute(
        select(Category).where(Category.is_active.is_(True)).order_by(Category.name.asc())
    )
    return list(result.scalars().all())


async def list_locations(db: AsyncSession) -> list[Location]:
    result = await db.execute(
        select(Location).where(Location.is_active.is_(True)).order_by(Location.county.asc())
    )
    return list(result.scalars().all())


async def seed_reference_data(db: AsyncSession) -> dict[str, int]:
    """Insert the default catalogs into empty tables. Returns rows added per table."""
    added = {"categories": 0, "locations": 0}

    if not await db.scalar(select(func.count(Category.id))):
        for name, description in DEFAULT_CATEGORIES:
            db.add(Category(name=name, description=description))
        added["categories"] = len(DEFAULT_CATEGORIES)

    if not await db.scalar(select(func.count(Location.id))):
        for county, region in DEFAULT_LOCATIONS:
            db.add(Location(county=county, region=region))
        added["locations"] = len(DEFAULT_LOCATIONS)

    if any(added.values()):
        await db.commit()
    return {k: v for k, v in added.items() if v}
