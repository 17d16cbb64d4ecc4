import pytest

from load_analyzer.config import get_settings
from load_analyzer.main import get_limiter


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    # The suite makes many requests from one client address.
    monkeypatch.setenv("RATE_LIMIT_RPM", "10000")
    monkeypatch.delenv("HMAC_SECRET", raising=False)
    get_settings.cache_clear()
    get_limiter.cache_clear()
    yield
    get_settings.cache_clear()
    get_limiter.cache_clear()
