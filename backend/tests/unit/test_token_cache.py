from __future__ import annotations

from datetime import datetime, timezone

import clio_connect.services.token_cache as token_cache_module
from clio_connect.schemas.token import TokenRecord
from clio_connect.services.token_cache import MemoryTokenCache


def _record(access_token: str = "c" * 24) -> TokenRecord:
    issued_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
    return TokenRecord(
        user_id="default",
        access_token=access_token,
        refresh_token=None,
        token_type="Bearer",
        expires_in=3600,
        scope="",
        created_at=issued_at,
        updated_at=issued_at,
    )


def test_cache_returns_entry_until_ttl(monkeypatch):
    now = [100.0]
    monkeypatch.setattr(token_cache_module, "monotonic", lambda: now[0])
    cache = MemoryTokenCache(ttl_s=30)

    cache.set("default", _record())
    now[0] = 130.0
    assert cache.get("default").access_token == "c" * 24

    now[0] = 130.5
    assert cache.get("default") is None
    assert len(cache) == 0


def test_invalidate_and_overwrite():
    cache = MemoryTokenCache(ttl_s=30)

    cache.set("default", _record())
    cache.set("default", _record("d" * 24))
    assert cache.get("default").access_token == "d" * 24

    cache.invalidate("default")
    cache.invalidate("missing")
    assert cache.get("default") is None
