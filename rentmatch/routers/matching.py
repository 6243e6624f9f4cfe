from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from structlog import get_logger

from rentmatch.config import settings
from rentmatch.dependencies.auth import require_tenant
from rentmatch.dependencies.stores import get_preferences_store, get_property_store
from rentmatch.schemas.matching import MatchedProperty, MatchesResponse
from rentmatch.services.errors import PreferencesError, PreferencesNotFound
from rentmatch.services.matching import rank_properties, score_property
from rentmatch.services.preferences_store import PreferencesStore
from rentmatch.services.property_store import PropertyStore

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/matching", tags=["matching"])

_limiter = RateLimiter(times=settings.MATCHING_RATE_LIMIT_TIMES, seconds=settings.MATCHING_RATE_LIMIT_SECONDS)


async def rate_limit(request: Request, response: Response):
    # Redis is optional; without it requests are not limited
    if FastAPILimiter.redis is None:
        return
    await _limiter(request, response)


async def _load_preferences(store: PreferencesStore, user_id) -> dict:
    try:
        return await store.get(user_id)
    except PreferencesNotFound:
        raise HTTPException(status_code=404, detail="Set your preferences to see matches")
    except PreferencesError as e:
        logger.error("Could not load preferences for matching", user_id=str(user_id), error=e.message)
        raise HTTPException(status_code=503, detail="Preferences temporarily unavailable")


@router.get("/matches", response_model=MatchesResponse, dependencies=[Depends(rate_limit)])
async def get_matches(
    limit: int = Query(settings.MATCHING_DEFAULT_LIMIT, ge=1, le=200),
    min_score: float = Query(0, ge=0, le=100),
    user: dict = Depends(require_tenant),
    preferences_store: PreferencesStore = Depends(get_preferences_store),
    property_store: PropertyStore = Depends(get_property_store),
):
    preferences = await _load_preferences(preferences_store, user["user_id"])
    properties = await property_store.list()
    ranked = rank_properties(preferences, properties, min_score=min_score, limit=limit)
    logger.info(
        "Matches computed",
        user_id=str(user["user_id"]),
        candidates=len(properties),
        returned=len(ranked),
    )
    return MatchesResponse(total=len(ranked), results=ranked)


@router.get("/property/{property_id}", response_model=MatchedProperty, dependencies=[Depends(rate_limit)])
async def get_property_match(
    property_id: UUID,
    user: dict = Depends(require_tenant),
    preferences_store: PreferencesStore = Depends(get_preferences_store),
    property_store: PropertyStore = Depends(get_property_store),
):
    prop = await property_store.get(property_id)
    if prop is None:
        raise HTTPException(status_code=404, detail="Property not found")
    preferences = await _load_preferences(preferences_store, user["user_id"])
    match = score_property(preferences, prop, prop.building)
    return MatchedProperty(property=prop, match=match)
