from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from structlog import get_logger

from rentmatch.dependencies.auth import require_tenant
from rentmatch.dependencies.stores import get_preferences_store
from rentmatch.schemas.preferences import PreferencesFields, PreferencesRead
from rentmatch.services.errors import (
    PreferencesConflict,
    PreferencesError,
    PreferencesNotFound,
    PreferencesValidationError,
)
from rentmatch.services.preferences_store import PreferencesStore

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1", tags=["preferences"])


def _as_http_error(user_id, exc: PreferencesError) -> HTTPException:
    if isinstance(exc, PreferencesValidationError):
        return HTTPException(status_code=422, detail={"errors": exc.errors})
    if isinstance(exc, PreferencesConflict):
        return HTTPException(
            status_code=409,
            detail={"message": exc.message, "current_version": exc.current_version},
        )
    if isinstance(exc, PreferencesNotFound):
        return HTTPException(status_code=404, detail="Preferences not found")
    logger.error("Preferences store failure", user_id=str(user_id), error=exc.message)
    return HTTPException(status_code=503, detail="Preferences temporarily unavailable")


def _parse_if_match(if_match: Optional[str]) -> Optional[int]:
    if if_match is None:
        return None
    raw = if_match.strip()
    if raw.startswith("W/"):
        raw = raw[2:]
    try:
        return int(raw.strip('"'))
    except ValueError:
        raise HTTPException(status_code=422, detail={"errors": {"If-Match": "Expected a preferences version"}})


def _with_etag(response: Response, record: dict) -> PreferencesRead:
    response.headers["ETag"] = str(record.get("version"))
    return PreferencesRead.model_validate(record)


@router.get("/preferences", response_model=PreferencesRead)
async def get_preferences(
    response: Response,
    user: dict = Depends(require_tenant),
    store: PreferencesStore = Depends(get_preferences_store),
):
    try:
        record = await store.get(user["user_id"])
    except PreferencesError as e:
        raise _as_http_error(user["user_id"], e)
    return _with_etag(response, record)


@router.put("/preferences", response_model=PreferencesRead)
async def upsert_preferences(
    payload: PreferencesFields,
    response: Response,
    user: dict = Depends(require_tenant),
    store: PreferencesStore = Depends(get_preferences_store),
):
    fields = payload.model_dump(mode="json", exclude_unset=True)
    try:
        record = await store.save(user["user_id"], fields)
    except PreferencesError as e:
        raise _as_http_error(user["user_id"], e)
    logger.info("Preferences upserted", user_id=str(user["user_id"]), fields=sorted(fields))
    return _with_etag(response, record)


@router.patch("/preferences", response_model=PreferencesRead)
async def patch_preferences(
    payload: PreferencesFields,
    response: Response,
    if_match: Optional[str] = Header(None),
    user: dict = Depends(require_tenant),
    store: PreferencesStore = Depends(get_preferences_store),
):
    fields = payload.model_dump(mode="json", exclude_unset=True)
    expected_version = _parse_if_match(if_match)
    try:
        record = await store.update(user["user_id"], fields, expected_version=expected_version)
    except PreferencesError as e:
        raise _as_http_error(user["user_id"], e)
    logger.info(
        "Preferences patched",
        user_id=str(user["user_id"]),
        fields=sorted(fields),
        version=record.get("version"),
    )
    return _with_etag(response, record)
