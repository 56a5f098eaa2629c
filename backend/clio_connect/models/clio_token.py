from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from clio_connect.models.base import Base

DEFAULT_TOKEN_TYPE = "Bearer"
DEFAULT_EXPIRES_IN_S = 604800  # 7 days, CLIO's documented access token lifetime


class ClioToken(Base):
    __tablename__ = "clio_tokens"

    id: Mapped[int] = mapped_column(primary_key=True)

    # one row per local account; upserts conflict on this column
    user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)

    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_type: Mapped[str] = mapped_column(String(32), nullable=False, default=DEFAULT_TOKEN_TYPE)
    expires_in: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_EXPIRES_IN_S)
    scope: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
