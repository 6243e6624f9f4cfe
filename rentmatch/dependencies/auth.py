import httpx
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pybreaker import CircuitBreaker, CircuitBreakerError
from structlog import get_logger

from rentmatch.config import settings

logger = get_logger(__name__)
security = HTTPBearer()
breaker = CircuitBreaker(fail_max=3, reset_timeout=60, exclude=[HTTPException])


@breaker
async def _verify_token(token: str) -> dict:
    async with httpx.AsyncClient() as client:
        response = await client.get(
            f"{settings.USER_MANAGEMENT_URL}/auth/verify",
            headers={"Authorization": f"Bearer {token}"},
            timeout=10.0,
        )
    if response.status_code != 200:
        logger.error("Token verification failed", status_code=response.status_code)
        raise HTTPException(status_code=401, detail="Invalid token")
    return response.json()


async def get_current_user(credentials: HTTPAuthorizationCredentials = Security(security)) -> dict:
    try:
        return await _verify_token(credentials.credentials)
    except CircuitBreakerError:
        logger.error("User management circuit open")
        raise HTTPException(status_code=503, detail="Authentication service unavailable")
    except httpx.HTTPError as e:
        logger.error("User management unreachable", error=str(e))
        raise HTTPException(status_code=503, detail="Authentication service unavailable")


async def require_tenant(user: dict = Depends(get_current_user)) -> dict:
    if str(user.get("role", "")).lower() != "tenant":
        raise HTTPException(status_code=403, detail="Only Tenants can manage preferences and matches")
    return user
