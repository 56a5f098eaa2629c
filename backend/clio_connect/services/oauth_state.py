from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clio_connect.core.errors import StorageError
from clio_connect.models.oauth_state import OAuthState
from clio_connect.schemas.token import as_utc

logger = logging.getLogger(__name__)

STATE_BYTES = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OAuthStateStore:
    """Short-lived, single-use OAuth ``state`` values bound to a local user."""

    def __init__(self, db: Session, ttl_s: int = 600, clock: Callable[[], datetime] | None = None):
        self.db = db
        self.ttl = timedelta(seconds=ttl_s)
        self.clock = clock or _utcnow

    def issue(self, user_id: str) -> str:
        now = self.clock()
        state = secrets.token_urlsafe(STATE_BYTES)
        try:
            self.db.execute(
                delete(OAuthState)
                .where(OAuthState.created_at < now - self.ttl)
                .execution_options(synchronize_session=False)
            )
            self.db.add(OAuthState(state=state, user_id=user_id, created_at=now))
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Failed to persist OAuth state: {exc.__class__.__name__}") from exc
        return state

    def consume(self, state: str) -> str | None:
        """Return the bound user id and invalidate the state, or ``None``."""
        try:
            pending = self.db.execute(
                select(OAuthState).where(OAuthState.state == state)
            ).scalar_one_or_none()
            if pending is None:
                self.db.commit()
                return None
            user_id = pending.user_id
            created_at = as_utc(pending.created_at)

            # a racing callback may have consumed it between the read and this delete
            result = self.db.execute(delete(OAuthState).where(OAuthState.state == state))
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Failed to consume OAuth state: {exc.__class__.__name__}") from exc

        if result.rowcount != 1:
            return None
        if self.clock() - created_at > self.ttl:
            logger.warning("Rejected expired OAuth state", extra={"user_id": user_id})
            return None
        return user_id
