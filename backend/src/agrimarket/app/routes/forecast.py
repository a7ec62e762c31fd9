"""Demand forecast routes: crop recommendations by county and season."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.app.responses import success_response
from agrimarket.app.routes.auth import get_current_user_dep
from agrimarket.domain.models import User
from agrimarket.domain.schemas import ForecastRequest
from agrimarket.infra.database import get_db
from agrimarket.services import forecast_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/forecast", tags=["forecast"])


@router.post("/recommendations")
async def crop_recommendations(data: ForecastRequest):
    return success_response(
        forecast_service.recommend_crops(data.location, data.land_size, data.season, data.land_unit)
    )


@router.get("/user-recommendations")
async def user_recommendations(
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await forecast_service.recommendations_for_user(db, user))


@router.get("/seasons")
async def list_seasons():
    return success_response([
        {k: v for k, v in season.items() if k != "months"} for season in forecast_service.SEASONS
    ])
