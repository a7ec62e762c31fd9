"""Demand Forecast - Ranks crops for a county and growing season.

Pure-function module, no database access. The user-facing entry point
(``recommendations_for_user``) only reads preferences and the profile to pick
its inputs, then delegates to ``recommend_crops``.

Scoring:
    - Base demand score comes from the county catalog (national default
      catalog for unknown counties).
    - Crops out of season lose ``OFF_SEASON_PENALTY`` points; in-season crops
      gain ``IN_SEASON_BONUS``. Scores are clamped to 0..100.
    - Expected yield ranges are quoted per acre and scaled to the plot size.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.domain.enums import LandUnit, ProfitPotential, Season
from agrimarket.domain.models import User
from agrimarket.services import preference_service

logger = logging.getLogger(__name__)

ACRES_PER_HECTARE = 2.47105
IN_SEASON_BONUS = 5
OFF_SEASON_PENALTY = 15
DEFAULT_LAND_SIZE = 1.0

_LR, _SR, _DRY = Season.LONG_RAINS, Season.SHORT_RAINS, Season.DRY_SEASON
_ALL_SEASONS = frozenset(Season)

SEASONS = [
    {
        "name": "Long Rains (March-May)",
        "value": _LR.value,
        "description": "Main growing season with reliable rainfall",
        "months": [3, 4, 5],
    },
    {
        "name": "Short Rains (October-December)",
        "value": _SR.value,
        "description": "Secondary growing season, good for quick-maturing crops",
        "months": [10, 11, 12],
    },
    {
        "name": "Dry Season (June-September)",
        "value": _DRY.value,
        "description": "Limited to irrigated farming and drought-resistant crops",
        "months": [1, 2, 6, 7, 8, 9],
    },
]


@dataclass(frozen=True)
class CropProfile:
    crop: str
    demand_score: int
    price_range: str
    reason: str
    yield_low: float
    yield_high: float
    yield_unit: str
    profit_potential: ProfitPotential
    seasonal_advice: str
    market_demand: str
    seasons: frozenset = _ALL_SEASONS


_H, _M = ProfitPotential.HIGH, ProfitPotential.MEDIUM

CATALOG: dict[str, list[CropProfile]] = {
    "nairobi": [
        CropProfile(
            "Kale (Sukuma Wiki)", 95, "KSh 20-35/bunch",
            "High urban demand, short supply chain to consumers",
            3000, 4000, "bunches", _H,
            "Plant year-round with irrigation for consistent supply",
            "Very High - Urban population needs daily vegetables",
        ),
        CropProfile(
            "Tomatoes", 88, "KSh 60-120/kg",
            "Consistent restaurant and household demand",
            250, 350, "crates", _H,
            "Best during dry season with greenhouse farming",
            "High - Hotels, restaurants, and households",
            frozenset({_DRY, _SR}),
        ),
        CropProfile(
            "French Beans", 82, "KSh 150-200/kg",
            "Export potential to Europe, high value crop",
            2500, 3500, "kg", _H,
            "Plant during long rains for export quality",
            "High - Export market and local supermarkets",
            frozenset({_LR, _SR}),
        ),
    ],
    "kiambu": [
        CropProfile(
            "Coffee", 92, "KSh 50-80/kg",
            "Premium coffee market growing, ideal climate",
            8, 12, "bags", _H,
            "Harvest during dry season for best quality",
            "High - Local and international premium market",
        ),
        CropProfile(
            "Avocado", 87, "KSh 12-20/piece",
            "Export demand increasing, health food trend",
            8000, 12000, "pieces", _H,
            "Plant during long rains, harvest year-round",
            "Very High - Export to Europe and Middle East",
        ),
        CropProfile(
            "Irish Potatoes", 85, "KSh 30-45/kg",
            "High altitude advantage, consistent demand",
            200, 280, "bags", _M,
            "Plant during long rains and dry season",
            "High - Urban centers and processing industry",
            frozenset({_LR, _DRY}),
        ),
    ],
    "trans nzoia": [
        CropProfile(
            "Maize", 90, "KSh 40-55/kg",
            "Ideal climate, food security crop, consistent demand",
            12, 18, "bags", _M,
            "Plant during long rains for best yields",
            "Very High - National food security crop",
            frozenset({_LR, _SR}),
        ),
        CropProfile(
            "Wheat", 85, "KSh 35-50/kg",
            "Suitable climate, milling industry demand",
            15, 22, "bags", _M,
            "Plant during long rains, harvest in dry season",
            "High - Flour milling industry",
            frozenset({_LR}),
        ),
        CropProfile(
            "Beans", 80, "KSh 90-130/kg",
            "Protein source, good rotation crop with maize",
            6, 10, "bags", _M,
            "Intercrop with maize or plant separately",
            "High - Staple protein source",
            frozenset({_LR, _SR}),
        ),
    ],
}

DEFAULT_CATALOG: list[CropProfile] = [
    CropProfile(
        "Maize", 85, "KSh 35-50/kg",
        "Staple food, consistent demand across Kenya",
        8, 15, "bags", _M,
        "Plant during long rains for best results",
        "High - National staple food",
        frozenset({_LR, _SR}),
    ),
    CropProfile(
        "Beans", 78, "KSh 80-120/kg",
        "Protein source, good market prices",
        4, 8, "bags", _M,
        "Can intercrop with maize",
        "High - Protein source for most households",
        frozenset({_LR, _SR}),
    ),
    CropProfile(
        "Sweet Potatoes", 75, "KSh 30-60/kg",
        "Growing health consciousness, drought tolerant",
        120, 200, "bags", _M,
        "Plant during long rains",
        "Medium - Health food trend growing",
        frozenset({_LR, _SR}),
    ),
]


# ── Helpers ──────────────────────────────────────────────────────────────────

def county_key(location: str) -> str:
    """``"Trans Nzoia County"`` / ``"trans  nzoia"`` -> ``"trans nzoia"``."""
    cleaned = re.sub(r"\s+", " ", location.strip().lower())
    return re.sub(r"\s+county$", "", cleaned)


def catalog_for(location: str) -> list[CropProfile]:
    return CATALOG.get(county_key(location), DEFAULT_CATALOG)


def to_acres(land_size: float, unit: LandUnit) -> float:
    if unit == LandUnit.HECTARES:
        return land_size * ACRES_PER_HECTARE
    return land_size


def season_for_month(month: int) -> Season:
    for season in SEASONS:
        if month in season["months"]:
            return Season(season["value"])
    raise ValueError(f"Invalid month: {month}")


def current_season(now: Optional[datetime] = None) -> Season:
    now = now or datetime.now(timezone.utc)
    return season_for_month(now.month)


def _format_amount(value: float) -> str:
    return f"{value:,.0f}" if value >= 10 else f"{value:,.1f}".rstrip("0").rstrip(".")


def scale_yield(profile: CropProfile, acres: float) -> str:
    low = profile.yield_low * acres
    high = profile.yield_high * acres
    return f"{_format_amount(low)}-{_format_amount(high)} {profile.yield_unit}"


def seasonal_score(profile: CropProfile, season: Season) -> int:
    if season in profile.seasons:
        score = profile.demand_score + IN_SEASON_BONUS
    else:
        score = profile.demand_score - OFF_SEASON_PENALTY
    return max(0, min(100, score))


# ── Public API ───────────────────────────────────────────────────────────────

def recommend_crops(
    location: str,
    land_size: float,
    season: Season,
    land_unit: LandUnit = LandUnit.ACRES,
) -> list[dict]:
    """Ranked crop recommendations for a county, season and plot size.

    Returns camelCase dicts ordered by adjusted demand score, highest first.
    Ties keep catalog order.
    """
    if not math.isfinite(land_size) or land_size <= 0:
        raise ValueError("land_size must be a positive, finite number")
    acres = to_acres(land_size, land_unit)
    profiles = catalog_for(location)

    results = []
    for profile in profiles:
        results.append({
            "crop": profile.crop,
            "demandScore": seasonal_score(profile, season),
            "priceRange": profile.price_range,
            "reason": profile.reason,
            "expectedYield": scale_yield(profile, acres),
            "profitPotential": profile.profit_potential.value,
            "seasonalAdvice": profile.seasonal_advice,
            "marketDemand": profile.market_demand,
            "inSeason": season in profile.seasons,
        })
    results.sort(key=lambda r: r["demandScore"], reverse=True)

    logger.info(
        "Forecast computed: location=%s season=%s acres=%.2f crops=%d",
        location, season.value, acres, len(results),
    )
    return results


def _coerce(enum_cls, value, fallback):
    try:
        return enum_cls(value)
    except ValueError:
        return fallback


async def recommendations_for_user(db: AsyncSession, user: User) -> dict:
    """Recommendations driven by the caller's saved filters.

    Saved ``searchFilters`` keys ``location``, ``season``, ``landSize`` and
    ``landUnit`` win; otherwise the profile location, the current season and
    one acre are used.
    """
    preference = await preference_service.get_preferences(db, user.id)
    filters = (preference.search_filters if preference else None) or {}

    location = filters.get("location") or filters.get("county")
    if not location and user.profile is not None:
        location = user.profile.location
    location = location or ""

    season = _coerce(Season, filters.get("season"), current_season())
    land_unit = _coerce(LandUnit, filters.get("landUnit"), LandUnit.ACRES)
    try:
        land_size = float(filters.get("landSize") or DEFAULT_LAND_SIZE)
    except (TypeError, ValueError):
        land_size = DEFAULT_LAND_SIZE
    if not math.isfinite(land_size) or land_size <= 0:
        land_size = DEFAULT_LAND_SIZE

    return {
        "location": location or None,
        "season": season.value,
        "landSize": land_size,
        "landUnit": land_unit.value,
        "recommendations": recommend_crops(location, land_size, season, land_unit),
    }
