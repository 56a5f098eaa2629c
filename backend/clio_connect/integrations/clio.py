from __future__ import annotations

import logging
from urllib.parse import urlencode

import httpx

from clio_connect.core.errors import ClioAPIError, ConfigurationError, NetworkError, TokenExchangeError

logger = logging.getLogger(__name__)


class ClioClient:
    """Thin wrapper over the CLIO OAuth and identity endpoints.

    Calls are never retried here: authorization codes are single-use, and the
    caller decides whether a user-initiated action is worth repeating.
    """

    AUTHORIZE_PATH = "/oauth/authorize"
    TOKEN_PATH = "/oauth/token"
    DEAUTHORIZE_PATH = "/oauth/deauthorize"
    WHO_AM_I_PATH = "/api/v4/users/who_am_i.json"
    API_VERSION = "4"

    def __init__(
        self,
        base_url: str = "https://app.clio.com",
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        timeout_s: float = 10.0,
        http: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout_s = timeout_s
        # an injected client belongs to the caller and is left open
        self._owns_http = http is None
        self._http = http or httpx.Client(timeout=timeout_s)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> ClioClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def require_config(self, *names: str) -> None:
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            env_names = ", ".join(f"CLIO_{name.upper()}" for name in missing)
            raise ConfigurationError(f"CLIO configuration missing: {env_names}")

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self._http.request(method, self._url(path), timeout=self.timeout_s, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"CLIO request timed out: {method} {path}") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"CLIO request failed: {exc.__class__.__name__}") from exc

    def _post_token_form(self, payload: dict) -> httpx.Response:
        # the token endpoint only accepts form-encoded bodies
        return self._send(
            "POST",
            self.TOKEN_PATH,
            data=payload,
            headers={"Accept": "application/json"},
        )

    @staticmethod
    def _token_payload(r: httpx.Response) -> dict:
        try:
            data = r.json()
        except ValueError as exc:
            raise TokenExchangeError(r.status_code, r.text, "Token endpoint returned invalid JSON") from exc
        if not isinstance(data, dict) or not data.get("access_token"):
            raise TokenExchangeError(r.status_code, r.text, "No access token received")
        return data

    def authorize_url(self, state: str, scope: str) -> str:
        self.require_config("client_id", "redirect_uri")
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": scope,
            "state": state,
        }
        return self._url(self.AUTHORIZE_PATH) + "?" + urlencode(params)

    def exchange_code(self, code: str, redirect_uri: str | None = None) -> dict:
        self.require_config("client_id", "client_secret", "redirect_uri")
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri or self.redirect_uri,
        }
        r = self._post_token_form(payload)
        if not r.is_success:
            logger.error(
                "CLIO token exchange failed",
                extra={"provider_status": r.status_code, "body": r.text[:500]},
            )
            raise TokenExchangeError(r.status_code, r.text)
        return self._token_payload(r)

    def refresh(self, refresh_token: str) -> dict:
        self.require_config("client_id", "client_secret")
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        r = self._post_token_form(payload)
        if not r.is_success:
            raise TokenExchangeError(r.status_code, r.text, f"Token refresh failed: {r.status_code}")
        return self._token_payload(r)

    def revoke(self, access_token: str) -> None:
        r = self._send(
            "POST",
            self.DEAUTHORIZE_PATH,
            data={"token": access_token},
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
        )
        if not r.is_success:
            raise ClioAPIError(r.status_code, r.text)

    def who_am_i(self, access_token: str) -> dict:
        r = self._send(
            "GET",
            self.WHO_AM_I_PATH,
            params={"fields": "id,name,email"},
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
                "X-CLIO-API-VERSION": self.API_VERSION,
            },
        )
        if not r.is_success:
            raise ClioAPIError(r.status_code, r.text)
        try:
            body = r.json()
        except ValueError as exc:
            raise ClioAPIError(r.status_code, r.text) from exc
        data = body.get("data") if isinstance(body, dict) else None
        return data if isinstance(data, dict) else {}
