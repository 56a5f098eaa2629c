"""Persistence for CLIO token records.

The store owns its transactions: every call commits (or rolls back) before it
returns, so callers never observe a half-written record.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clio_connect.core.errors import StorageError
from clio_connect.models.clio_token import ClioToken
from clio_connect.schemas.token import TokenRecord

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class TokenStore(Protocol):
    def get(self, user_id: str) -> TokenRecord | None:
        """Return the user's token record, or ``None``."""

    def upsert(self, user_id: str, values: dict[str, Any]) -> TokenRecord:
        """Atomically insert or replace the user's token record."""

    def delete(self, user_id: str) -> bool:
        """Delete the user's record; ``True`` if a row was removed."""


class SqlAlchemyTokenStore:
    def __init__(self, db: Session):
        self.db = db

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        try:
            return _UPSERT_DIALECTS[dialect]
        except KeyError:
            raise StorageError(f"Atomic upsert is not supported on dialect {dialect!r}") from None

    def get(self, user_id: str) -> TokenRecord | None:
        try:
            token = self.db.execute(
                select(ClioToken).where(ClioToken.user_id == user_id)
            ).scalar_one_or_none()
            record = TokenRecord.model_validate(token) if token is not None else None
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Failed to read CLIO token: {exc.__class__.__name__}") from exc
        return record

    def upsert(self, user_id: str, values: dict[str, Any]) -> TokenRecord:
        row = {"user_id": user_id, **values}
        insert = self._insert()
        stmt = insert(ClioToken).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={key: stmt.excluded[key] for key in values},
        )

        try:
            self.db.execute(stmt)
            # read back inside the same transaction so the caller sees this write
            token = self.db.execute(
                select(ClioToken)
                .where(ClioToken.user_id == user_id)
                .execution_options(populate_existing=True)
            ).scalar_one()
            record = TokenRecord.model_validate(token)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(
                "Failed to store CLIO token",
                extra={"user_id": user_id, "error": exc.__class__.__name__},
            )
            raise StorageError("Token storage failed") from exc

        return record

    def delete(self, user_id: str) -> bool:
        try:
            result = self.db.execute(delete(ClioToken).where(ClioToken.user_id == user_id))
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Failed to delete CLIO token: {exc.__class__.__name__}") from exc
        return result.rowcount > 0
