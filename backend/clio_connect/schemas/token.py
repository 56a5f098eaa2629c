from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clio_connect.models.clio_token import DEFAULT_EXPIRES_IN_S, DEFAULT_TOKEN_TYPE

MIN_ACCESS_TOKEN_LENGTH = 20


def as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo; they are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TokenResponse(BaseModel):
    """Token endpoint payload, for both code exchange and refresh."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    token_type: str = DEFAULT_TOKEN_TYPE
    expires_in: int = Field(default=DEFAULT_EXPIRES_IN_S, gt=0)
    scope: str = ""

    @field_validator("token_type", "scope", "expires_in", mode="before")
    @classmethod
    def _null_means_default(cls, value: Any, info):
        if value is None or value == "":
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("refresh_token", mode="before")
    @classmethod
    def _blank_refresh_token_is_absent(cls, value: Any):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TokenRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    access_token: str
    refresh_token: str | None
    token_type: str
    expires_in: int
    scope: str
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(seconds=self.expires_in)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class ConnectionStatus(BaseModel):
    connected: bool
    account_name: str | None = None
    account_email: str | None = None
    needs_reauth: bool = False
    error: str | None = None


class DisconnectOut(BaseModel):
    success: bool
    message: str
