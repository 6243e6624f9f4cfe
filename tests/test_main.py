import pytest
from fastapi_limiter import FastAPILimiter

from rentmatch import main


@pytest.fixture
def no_limiter(monkeypatch):
    monkeypatch.setattr(FastAPILimiter, "redis", None)


async def test_lifespan_without_redis_skips_limiter(monkeypatch, no_limiter):
    monkeypatch.setattr(main.settings, "REDIS_URL", "")

    async with main.app.router.lifespan_context(main.app):
        assert FastAPILimiter.redis is None

    assert FastAPILimiter.redis is None


async def test_lifespan_survives_unreachable_redis(monkeypatch, no_limiter):
    monkeypatch.setattr(main.settings, "REDIS_URL", "redis://127.0.0.1:1/0")

    async with main.app.router.lifespan_context(main.app):
        assert FastAPILimiter.redis is None
