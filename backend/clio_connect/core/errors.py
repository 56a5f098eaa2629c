"""Exception taxonomy for the CLIO token lifecycle.

Each error class carries the HTTP status the route layer answers with
(``http_status``), so handlers never map exception types themselves.
"""

from __future__ import annotations


class ClioIntegrationError(Exception):
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(ClioIntegrationError):
    """OAuth client credentials or redirect URI are missing."""


class ValidationError(ClioIntegrationError):
    """Token data or request input rejected before it reaches storage."""

    http_status = 400


class InvalidStateError(ValidationError):
    """OAuth state is unknown, expired or was already consumed."""


class TokenExchangeError(ClioIntegrationError):
    """The token endpoint refused an authorization code."""

    http_status = 400

    def __init__(self, status_code: int, body: str, message: str | None = None):
        super().__init__(message or f"Token exchange failed: {status_code}")
        self.status_code = status_code
        self.body = body


class StorageError(ClioIntegrationError):
    pass


class NetworkError(ClioIntegrationError):
    http_status = 502


class ClioAPIError(ClioIntegrationError):
    http_status = 502

    def __init__(self, status_code: int, body: str):
        super().__init__(f"CLIO API returned error {status_code}")
        self.status_code = status_code
        self.body = body

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (401, 403)
