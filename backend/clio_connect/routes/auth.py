from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

from clio_connect.core.config import settings
from clio_connect.core.errors import TokenExchangeError
from clio_connect.services.clio_session import get_token_manager
from clio_connect.services.token_manager import TokenLifecycleManager

router = APIRouter(prefix="/auth/clio", tags=["auth"])


def _app_redirect(**params: str) -> RedirectResponse:
    base = settings.AUTH_SUCCESS_REDIRECT_URL or "/"
    separator = "&" if "?" in base else "?"
    return RedirectResponse(url=f"{base}{separator}{urlencode(params)}", status_code=303)


@router.get("/login")
def clio_login(
    scope: str | None = None,
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    # Single-user mode: every flow is started for the default account.
    url = manager.build_authorization_url(settings.DEFAULT_USER_ID, scope=scope)
    return RedirectResponse(url)


@router.get("/callback")
def clio_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    if error:
        return _app_redirect(error=error_description or error)

    if not code or not state:
        raise HTTPException(status_code=400, detail="Missing 'code' or 'state' parameter")

    try:
        manager.complete_authorization(state=state, code=code)
    except TokenExchangeError as exc:
        return _app_redirect(error=exc.message)

    return _app_redirect(connected="true")
