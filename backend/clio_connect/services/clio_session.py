from __future__ import annotations

from collections.abc import Generator

import httpx
from fastapi import Depends
from sqlalchemy.orm import Session

from clio_connect.core.config import Settings, settings
from clio_connect.core.db import get_db
from clio_connect.integrations.clio import ClioClient
from clio_connect.services.oauth_state import OAuthStateStore
from clio_connect.services.token_cache import MemoryTokenCache
from clio_connect.services.token_manager import TokenLifecycleManager
from clio_connect.services.token_store import SqlAlchemyTokenStore

# shared by every request in this process; disabled unless TOKEN_CACHE_TTL_S > 0
token_cache: MemoryTokenCache | None = (
    MemoryTokenCache(settings.TOKEN_CACHE_TTL_S) if settings.TOKEN_CACHE_TTL_S > 0 else None
)


def build_clio_client(config: Settings = settings, http: httpx.Client | None = None) -> ClioClient:
    return ClioClient(
        base_url=config.CLIO_BASE_URL,
        client_id=config.CLIO_CLIENT_ID,
        client_secret=config.CLIO_CLIENT_SECRET,
        redirect_uri=config.CLIO_REDIRECT_URI,
        timeout_s=config.CLIO_HTTP_TIMEOUT_S,
        http=http,
    )


def build_token_manager(
    db: Session,
    client: ClioClient,
    config: Settings = settings,
) -> TokenLifecycleManager:
    return TokenLifecycleManager(
        store=SqlAlchemyTokenStore(db),
        client=client,
        state_store=OAuthStateStore(db, ttl_s=config.OAUTH_STATE_TTL_S),
        cache=token_cache,
        default_scope=config.CLIO_SCOPES,
    )


def get_token_manager(db: Session = Depends(get_db)) -> Generator[TokenLifecycleManager, None, None]:
    with httpx.Client(timeout=settings.CLIO_HTTP_TIMEOUT_S) as http:
        yield build_token_manager(db, build_clio_client(settings, http=http))
