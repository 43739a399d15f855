"""Operator endpoints for runtime configuration and place exclusions."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from gacha_api.api.dependencies.security import require_admin_api_key
from gacha_api.api.errors import to_http_exception
from gacha_api.core.errors import GachaError, GachaErrorCode
from gacha_api.db.session import get_session
from gacha_api.models.gacha import PlaceExclusion
from gacha_api.services.catalog import Locale
from gacha_api.services.configuration import ConfigurationService
from gacha_api.services.gacha import ExclusionLedger, RarityRoller
from gacha_api.services.gacha.exclusions import CONFIG_CATEGORY, EXCLUSION_THRESHOLD_KEY
from gacha_api.services.gacha.rarity import RARITY_WEIGHTS_KEY


router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_api_key)],
)


class RarityWeightsPayload(BaseModel):
    weights: Dict[str, float] = Field(..., description="Percent weight per reward tier; at most 100 in total")


class RarityWeightsResponse(BaseModel):
    weights: Dict[str, float]
    noRewardWeight: float


class ConfigValuePayload(BaseModel):
    value: Any


class ConfigValueResponse(BaseModel):
    category: str
    key: str
    value: Any


class ExclusionCreateRequest(BaseModel):
    placeName: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    district: Optional[str] = None


class ExclusionResponse(BaseModel):
    id: UUID
    placeName: str
    city: str
    district: Optional[str]
    scope: str
    createdAt: Optional[datetime]


def _serialize_weights(weights: Dict[Any, float]) -> RarityWeightsResponse:
    as_strings = {getattr(tier, "value", tier): weight for tier, weight in weights.items()}
    return RarityWeightsResponse(weights=as_strings, noRewardWeight=max(100.0 - sum(as_strings.values()), 0.0))


def _serialize_exclusion(record: PlaceExclusion) -> ExclusionResponse:
    return ExclusionResponse(
        id=record.id,
        placeName=record.place_name,
        city=record.city,
        district=record.district or None,
        scope=record.scope.value,
        createdAt=record.created_at,
    )


@router.get("/gacha/rarity-weights", response_model=RarityWeightsResponse)
async def get_rarity_weights(db: AsyncSession = Depends(get_session)) -> RarityWeightsResponse:
    weights = await RarityRoller(ConfigurationService(db)).current_weights()
    return _serialize_weights(weights)


@router.put("/gacha/rarity-weights", response_model=RarityWeightsResponse)
async def update_rarity_weights(
    payload: RarityWeightsPayload,
    db: AsyncSession = Depends(get_session),
) -> RarityWeightsResponse:
    try:
        weights = await RarityRoller(ConfigurationService(db)).set_weights(payload.weights)
    except GachaError as error:
        raise to_http_exception(error) from error
    await db.commit()
    return _serialize_weights(weights)


@router.get("/configs/{category}", response_model=List[ConfigValueResponse])
async def list_configs(category: str, db: AsyncSession = Depends(get_session)) -> List[ConfigValueResponse]:
    values = await ConfigurationService(db).list_category(category)
    return [ConfigValueResponse(category=category, key=key, value=value) for key, value in values.items()]


@router.get("/configs/{category}/{key}", response_model=ConfigValueResponse)
async def get_config(category: str, key: str, db: AsyncSession = Depends(get_session)) -> ConfigValueResponse:
    value = await ConfigurationService(db).get(category, key)
    if value is None:
        raise HTTPException(status_code=404, detail="Configuration value not found")
    return ConfigValueResponse(category=category, key=key, value=value)


@router.put("/configs/{category}/{key}", response_model=ConfigValueResponse)
async def put_config(
    category: str,
    key: str,
    payload: ConfigValuePayload,
    db: AsyncSession = Depends(get_session),
) -> ConfigValueResponse:
    """Write a runtime value; known keys are validated before they are stored."""

    config = ConfigurationService(db)
    value = payload.value
    try:
        if category == CONFIG_CATEGORY and key == RARITY_WEIGHTS_KEY:
            if not isinstance(value, dict):
                raise GachaError(GachaErrorCode.INVALID_CONFIGURATION, "rarity weights must be an object")
            normalized = await RarityRoller(config).set_weights(value)
            value = {tier.value: weight for tier, weight in normalized.items()}
        elif category == CONFIG_CATEGORY and key == EXCLUSION_THRESHOLD_KEY:
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise GachaError(GachaErrorCode.INVALID_CONFIGURATION, "exclusion threshold must be a positive integer")
            await config.set(category, key, value)
        else:
            await config.set(category, key, value)
    except GachaError as error:
        raise to_http_exception(error) from error
    await db.commit()
    return ConfigValueResponse(category=category, key=key, value=value)


@router.get("/exclusions", response_model=List[ExclusionResponse])
async def list_exclusions(
    city: Optional[str] = Query(None),
    district: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_session),
) -> List[ExclusionResponse]:
    locale = Locale(city=city, district=district or None) if city else None
    records = await ExclusionLedger(db).list_global_exclusions(locale)
    return [_serialize_exclusion(record) for record in records]


@router.post("/exclusions", response_model=ExclusionResponse, status_code=status.HTTP_201_CREATED)
async def create_exclusion(
    payload: ExclusionCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> ExclusionResponse:
    locale = Locale(city=payload.city, district=payload.district or None)
    record = await ExclusionLedger(db).global_exclude(payload.placeName, locale)
    response = _serialize_exclusion(record)
    await db.commit()
    return response


@router.delete("/exclusions/{exclusion_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_exclusion(exclusion_id: UUID, db: AsyncSession = Depends(get_session)) -> Response:
    removed = await ExclusionLedger(db).remove_global_exclusion(exclusion_id)
    if not removed:
        raise HTTPException(status_code=404, detail="Exclusion not found")
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
