"""CLIO token lifecycle: authorize, exchange, store, validate, refresh, revoke.

A user's token moves through ABSENT -> PENDING_EXCHANGE -> ACTIVE, and from
ACTIVE either back to ACTIVE through a refresh or to ABSENT when it expires
without a usable refresh token or is revoked. Refresh happens lazily on read;
nothing here runs in the background.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

import pydantic

from clio_connect.core.errors import (
    ClioAPIError,
    ClioIntegrationError,
    InvalidStateError,
    NetworkError,
    StorageError,
    TokenExchangeError,
    ValidationError,
)
from clio_connect.integrations.clio import ClioClient
from clio_connect.schemas.token import (
    MIN_ACCESS_TOKEN_LENGTH,
    ConnectionStatus,
    TokenRecord,
    TokenResponse,
)
from clio_connect.services.oauth_state import OAuthStateStore
from clio_connect.services.token_cache import MemoryTokenCache
from clio_connect.services.token_store import TokenStore

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "read:user_profile"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenLifecycleManager:
    def __init__(
        self,
        store: TokenStore,
        client: ClioClient,
        state_store: OAuthStateStore,
        *,
        cache: MemoryTokenCache | None = None,
        clock: Callable[[], datetime] | None = None,
        default_scope: str = DEFAULT_SCOPE,
    ):
        self.store = store
        self.client = client
        self.state_store = state_store
        self.cache = cache
        self.clock = clock or _utcnow
        self.default_scope = default_scope

    # -- storage helpers -------------------------------------------------

    def _load(self, user_id: str) -> TokenRecord | None:
        if self.cache is not None:
            cached = self.cache.get(user_id)
            if cached is not None:
                return cached
        record = self.store.get(user_id)
        if record is not None and self.cache is not None:
            self.cache.set(user_id, record)
        return record

    def _delete(self, user_id: str) -> bool:
        if self.cache is not None:
            self.cache.invalidate(user_id)
        return self.store.delete(user_id)

    # -- authorization ---------------------------------------------------

    def build_authorization_url(self, user_id: str, scope: str | None = None) -> str:
        if not user_id or not user_id.strip():
            raise ValidationError("user_id is required to start CLIO authorization")

        # checked before issuing a state so a misconfigured app leaves no rows behind
        self.client.require_config("client_id", "redirect_uri")
        state = self.state_store.issue(user_id)
        url = self.client.authorize_url(state=state, scope=scope or self.default_scope)
        logger.info("Built CLIO authorization URL", extra={"user_id": user_id})
        return url

    def exchange_code_for_token(self, code: str, redirect_uri: str | None = None) -> TokenResponse:
        if not code:
            raise ValidationError("Authorization code is required")
        data = self.client.exchange_code(code, redirect_uri=redirect_uri)
        try:
            token = TokenResponse.model_validate(data)
        except pydantic.ValidationError as exc:
            # field errors only; the payload itself holds secrets
            detail = json.dumps(exc.errors(include_url=False, include_input=False), default=str)
            raise TokenExchangeError(200, detail, "Malformed token response") from exc
        logger.info(
            "Exchanged CLIO authorization code",
            extra={
                "has_refresh_token": token.refresh_token is not None,
                "expires_in": token.expires_in,
                "scope": token.scope,
            },
        )
        return token

    def complete_authorization(self, state: str, code: str) -> TokenRecord:
        user_id = self.state_store.consume(state)
        if user_id is None:
            raise InvalidStateError("Invalid or expired OAuth state")
        token = self.exchange_code_for_token(code)
        return self.store_token(user_id, token)

    # -- token records ---------------------------------------------------

    def store_token(
        self, user_id: str, token_response: TokenResponse | Mapping[str, Any]
    ) -> TokenRecord:
        if not isinstance(token_response, TokenResponse):
            try:
                token_response = TokenResponse.model_validate(dict(token_response))
            except pydantic.ValidationError as exc:
                raise ValidationError(f"Invalid token data: {exc.error_count()} error(s)") from exc

        access_token = token_response.access_token
        if not access_token.strip():
            raise ValidationError("Access token must not be blank")
        if len(access_token) < MIN_ACCESS_TOKEN_LENGTH:
            raise ValidationError(
                f"Access token must be at least {MIN_ACCESS_TOKEN_LENGTH} characters"
            )

        now = self.clock()
        record = self.store.upsert(
            user_id,
            {
                "access_token": access_token,
                "refresh_token": token_response.refresh_token,
                "token_type": token_response.token_type,
                "expires_in": token_response.expires_in,
                "scope": token_response.scope,
                "created_at": now,
                "updated_at": now,
            },
        )
        if self.cache is not None:
            self.cache.set(user_id, record)

        logger.info(
            "Stored CLIO token",
            extra={
                "user_id": user_id,
                "expires_in": record.expires_in,
                "has_refresh_token": record.refresh_token is not None,
            },
        )
        return record

    def get_valid_token(self, user_id: str) -> str | None:
        record = self._load(user_id)
        if record is None:
            return None

        if not record.is_expired(self.clock()):
            return record.access_token

        if self.cache is not None:
            # a cached record may be stale; another worker could have refreshed it
            self.cache.invalidate(user_id)
            record = self.store.get(user_id)
            if record is None:
                return None
            if not record.is_expired(self.clock()):
                self.cache.set(user_id, record)
                return record.access_token

        logger.info("CLIO token expired", extra={"user_id": user_id})
        if record.refresh_token:
            refreshed = self._refresh(record)
            if refreshed is not None:
                return refreshed.access_token

        self._delete(user_id)
        return None

    def refresh_token(self, user_id: str) -> TokenRecord | None:
        # bypass the cache: the refresh token may have been rotated elsewhere
        record = self.store.get(user_id)
        if record is None:
            return None
        return self._refresh(record)

    def _refresh(self, record: TokenRecord) -> TokenRecord | None:
        if not record.refresh_token:
            return None

        try:
            data = self.client.refresh(record.refresh_token)
            if not data.get("refresh_token"):
                data = {**data, "refresh_token": record.refresh_token}
            refreshed = self.store_token(record.user_id, data)
        except StorageError:
            raise
        except ClioIntegrationError as exc:
            logger.warning(
                "CLIO token refresh failed",
                extra={
                    "user_id": record.user_id,
                    "error_type": exc.__class__.__name__,
                    "error": exc.message,
                },
            )
            return None

        logger.info("Refreshed CLIO token", extra={"user_id": record.user_id})
        return refreshed

    def revoke(self, user_id: str) -> bool:
        try:
            record = self._load(user_id)
        except StorageError:
            logger.exception("Failed to read CLIO token before revocation", extra={"user_id": user_id})
            record = None

        if record is not None and not record.is_expired(self.clock()):
            try:
                self.client.revoke(record.access_token)
                logger.info("Revoked CLIO token with provider", extra={"user_id": user_id})
            except (ClioAPIError, NetworkError) as exc:
                logger.warning(
                    "CLIO token revocation rejected; clearing local token anyway",
                    extra={"user_id": user_id, "error": exc.message},
                )

        try:
            self._delete(user_id)
        except StorageError:
            logger.exception("Failed to delete CLIO token", extra={"user_id": user_id})
            return False

        logger.info("Disconnected CLIO", extra={"user_id": user_id})
        return True

    # -- provider checks -------------------------------------------------

    def check_connection(self, user_id: str) -> ConnectionStatus:
        access_token = self.get_valid_token(user_id)
        if access_token is None:
            return ConnectionStatus(
                connected=False,
                needs_reauth=True,
                error="No access token found. Please connect to CLIO.",
            )

        try:
            account = self.client.who_am_i(access_token)
        except ClioAPIError as exc:
            if not exc.is_auth_failure:
                return self._transient_failure(user_id, exc)
            logger.warning(
                "CLIO rejected access token; attempting refresh",
                extra={"user_id": user_id, "provider_status": exc.status_code},
            )
            return self._retry_after_refresh(user_id)
        except NetworkError as exc:
            return self._transient_failure(user_id, exc)

        return self._connected(account)

    def _retry_after_refresh(self, user_id: str) -> ConnectionStatus:
        if self.cache is not None:
            self.cache.invalidate(user_id)

        refreshed = self.refresh_token(user_id)
        if refreshed is not None:
            try:
                return self._connected(self.client.who_am_i(refreshed.access_token))
            except ClioAPIError as exc:
                if not exc.is_auth_failure:
                    return self._transient_failure(user_id, exc)
            except NetworkError as exc:
                return self._transient_failure(user_id, exc)

        self._delete(user_id)
        logger.info("Cleared rejected CLIO token", extra={"user_id": user_id})
        return ConnectionStatus(
            connected=False,
            needs_reauth=True,
            error="Access token expired or invalid. Please reconnect to CLIO.",
        )

    @staticmethod
    def _connected(account: Mapping[str, Any]) -> ConnectionStatus:
        return ConnectionStatus(
            connected=True,
            account_name=account.get("name") or "Unknown User",
            account_email=account.get("email") or "Unknown Email",
        )

    @staticmethod
    def _transient_failure(user_id: str, exc: ClioIntegrationError) -> ConnectionStatus:
        logger.warning(
            "CLIO connection check failed",
            extra={"user_id": user_id, "error_type": exc.__class__.__name__, "error": exc.message},
        )
        return ConnectionStatus(connected=False, error=exc.message)

    def get_account(self, user_id: str) -> dict | None:
        access_token = self.get_valid_token(user_id)
        if access_token is None:
            return None
        return self.client.who_am_i(access_token)
