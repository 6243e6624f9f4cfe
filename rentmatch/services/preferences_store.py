from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID, uuid4

import httpx
from pybreaker import CircuitBreaker, CircuitBreakerError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from rentmatch.config import settings
from rentmatch.models.preferences import Preferences
from rentmatch.schemas.preferences import (
    PREFERENCE_FIELDS,
    PreferencesFields,
    PreferencesRead,
    validation_errors,
)
from rentmatch.services.errors import (
    PreferencesConflict,
    PreferencesNotFound,
    PreferencesStoreError,
    PreferencesValidationError,
)
from rentmatch.utils.retry import retry_api

logger = get_logger(__name__)

PREFERENCES_PATH = "/api/v1/preferences"
_TRANSIENT = (httpx.TransportError, httpx.HTTPStatusError)

Record = Dict[str, Any]


class PreferencesStore(ABC):
    """Per-tenant preferences record store.

    Records are JSON-mode dicts shaped like ``PreferencesRead``.
    """

    @abstractmethod
    async def get(self, user_id) -> Record:
        """Return the tenant's record or raise ``PreferencesNotFound``."""

    @abstractmethod
    async def create(self, user_id, fields: Mapping[str, Any]) -> Record:
        ...

    @abstractmethod
    async def update(
        self, user_id, fields: Mapping[str, Any], expected_version: Optional[int] = None
    ) -> Record:
        """Patch only ``fields``. Raises ``PreferencesNotFound`` when there is no record yet."""

    async def save(
        self, user_id, fields: Mapping[str, Any], expected_version: Optional[int] = None
    ) -> Record:
        """Create-or-patch. A create that loses a race with another first save becomes a patch."""
        try:
            return await self.update(user_id, fields, expected_version=expected_version)
        except PreferencesNotFound:
            logger.info("Creating preferences on first save", user_id=str(user_id), fields=sorted(fields))
        try:
            return await self.create(user_id, fields)
        except PreferencesConflict:
            logger.info("Preferences created concurrently, patching instead", user_id=str(user_id), fields=sorted(fields))
            return await self.update(user_id, fields, expected_version=expected_version)


def _check_fields(fields: Mapping[str, Any], merged: Mapping[str, Any]) -> None:
    errors = {k: "Unknown field" for k in fields if k not in PREFERENCE_FIELDS}
    errors.update(validation_errors({k: v for k, v in merged.items() if k in PREFERENCE_FIELDS}))
    if errors:
        raise PreferencesValidationError(errors)


def _clean(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Validated python values for the given fields only (dates as ``date``, pets as dicts)."""
    return PreferencesFields.model_validate(dict(fields)).model_dump(include=set(fields))


def _as_uuid(user_id) -> UUID:
    return user_id if isinstance(user_id, UUID) else UUID(str(user_id))


def to_record(obj: Any) -> Record:
    return PreferencesRead.model_validate(obj).model_dump(mode="json")


class InMemoryPreferencesStore(PreferencesStore):
    """Dict-backed store; also records every call for inspection."""

    def __init__(self, records: Optional[Dict[str, Record]] = None):
        self.records: Dict[str, Record] = dict(records or {})
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        # successful writes only: (operation, fields)
        self.writes: List[Tuple[str, Dict[str, Any]]] = []

    async def get(self, user_id) -> Record:
        self.calls.append(("get", str(user_id), {}))
        record = self.records.get(str(user_id))
        if record is None:
            raise PreferencesNotFound(user_id)
        return dict(record)

    async def create(self, user_id, fields: Mapping[str, Any]) -> Record:
        self.calls.append(("create", str(user_id), dict(fields)))
        if str(user_id) in self.records:
            raise PreferencesConflict(None, self.records[str(user_id)]["version"])
        _check_fields(fields, fields)
        now = datetime.now(timezone.utc)
        record = to_record(
            {
                **_clean(fields),
                "id": uuid4(),
                "user_id": _as_uuid(user_id),
                "version": 1,
                "created_at": now,
                "updated_at": now,
            }
        )
        self.records[str(user_id)] = record
        self.writes.append(("create", dict(fields)))
        return dict(record)

    async def update(
        self, user_id, fields: Mapping[str, Any], expected_version: Optional[int] = None
    ) -> Record:
        self.calls.append(("update", str(user_id), dict(fields)))
        current = self.records.get(str(user_id))
        if current is None:
            raise PreferencesNotFound(user_id)
        if expected_version is not None and current["version"] != expected_version:
            raise PreferencesConflict(expected_version, current["version"])
        merged = {**current, **fields}
        _check_fields(fields, merged)
        record = to_record(
            {
                **current,
                **_clean(fields),
                "version": current["version"] + 1,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        self.records[str(user_id)] = record
        self.writes.append(("update", dict(fields)))
        return dict(record)


class SqlAlchemyPreferencesStore(PreferencesStore):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _row(self, user_id, for_update: bool = False) -> Optional[Preferences]:
        stmt = select(Preferences).where(Preferences.user_id == _as_uuid(user_id))
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, user_id) -> Record:
        row = await self._row(user_id)
        if row is None:
            raise PreferencesNotFound(user_id)
        return to_record(row)

    async def create(self, user_id, fields: Mapping[str, Any]) -> Record:
        _check_fields(fields, fields)
        row = Preferences(user_id=_as_uuid(user_id), version=1, **_clean(fields))
        self.session.add(row)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.warning("Concurrent preferences create", user_id=str(user_id))
            raise PreferencesConflict(None, None)
        await self.session.refresh(row)
        logger.info("Preferences created", user_id=str(user_id), fields=sorted(fields))
        return to_record(row)

    async def update(
        self, user_id, fields: Mapping[str, Any], expected_version: Optional[int] = None
    ) -> Record:
        row = await self._row(user_id, for_update=True)
        if row is None:
            raise PreferencesNotFound(user_id)
        if expected_version is not None and row.version != expected_version:
            await self.session.rollback()
            raise PreferencesConflict(expected_version, row.version)
        merged = {**to_record(row), **fields}
        try:
            _check_fields(fields, merged)
        except PreferencesValidationError:
            await self.session.rollback()
            raise
        for key, value in _clean(fields).items():
            setattr(row, key, value)
        row.version = row.version + 1
        await self.session.commit()
        await self.session.refresh(row)
        logger.info("Preferences updated", user_id=str(user_id), fields=sorted(fields), version=row.version)
        return to_record(row)


def _error_map(body: Any) -> Dict[str, str]:
    detail = body.get("detail", body) if isinstance(body, dict) else body
    if isinstance(detail, dict) and isinstance(detail.get("errors"), dict):
        return {str(k): str(v) for k, v in detail["errors"].items()}
    if isinstance(detail, list):
        # FastAPI request validation: [{"loc": [...], "msg": ...}]
        return {str(e.get("loc", ["__all__"])[-1]): str(e.get("msg", "Invalid value")) for e in detail}
    return {"__all__": str(detail)}


class HttpPreferencesStore(PreferencesStore):
    """Preferences store reached over HTTP (the ``/api/v1/preferences`` endpoints)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        retries: int = 3,
        retry_delay: float = 1.0,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.base_url = (base_url or settings.PREFERENCES_API_URL).rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = client
        self.breaker = breaker or CircuitBreaker(fail_max=3, reset_timeout=60)
        self._send_with_retry = retry_api(
            tries=retries, delay=retry_delay, retry_on=_TRANSIENT
        )(self.breaker(self._send))

    def _headers(self, expected_version: Optional[int] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if expected_version is not None:
            headers["If-Match"] = str(expected_version)
        return headers

    async def _send(self, method: str, headers: Dict[str, str], payload: Optional[dict]) -> httpx.Response:
        url = f"{self.base_url}{PREFERENCES_PATH}"
        if self._client is not None:
            response = await self._client.request(method, url, json=payload, headers=headers, timeout=self.timeout)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.request(method, url, json=payload, headers=headers, timeout=self.timeout)
        if response.status_code >= 500:
            response.raise_for_status()
        return response

    async def _call(
        self, method: str, payload: Optional[dict] = None, expected_version: Optional[int] = None, user_id=None
    ) -> Record:
        try:
            response = await self._send_with_retry(method, self._headers(expected_version), payload)
        except CircuitBreakerError:
            logger.error("Preferences API circuit open", method=method)
            raise PreferencesStoreError("Preferences service temporarily unavailable")
        except _TRANSIENT as e:
            logger.error("Preferences API request failed", method=method, error=str(e))
            raise PreferencesStoreError(f"Preferences service error: {e}")

        status = response.status_code
        if status in (200, 201):
            return response.json()
        body = _safe_json(response)
        if status == 404:
            raise PreferencesNotFound(user_id)
        if status == 409:
            detail = body.get("detail", body) if isinstance(body, dict) else None
            current = detail.get("current_version") if isinstance(detail, dict) else None
            raise PreferencesConflict(expected_version, current)
        if status in (400, 422):
            raise PreferencesValidationError(_error_map(body))
        logger.error("Unexpected preferences API response", method=method, status_code=status)
        raise PreferencesStoreError(f"Preferences service returned {status}", status_code=status)

    async def get(self, user_id) -> Record:
        return await self._call("GET", user_id=user_id)

    async def create(self, user_id, fields: Mapping[str, Any]) -> Record:
        return await self._call("PUT", dict(fields), user_id=user_id)

    async def update(
        self, user_id, fields: Mapping[str, Any], expected_version: Optional[int] = None
    ) -> Record:
        return await self._call("PATCH", dict(fields), expected_version=expected_version, user_id=user_id)


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"detail": response.text}
