from fastapi import APIRouter, Depends, HTTPException

from clio_connect.core.config import settings
from clio_connect.schemas.token import ConnectionStatus, DisconnectOut
from clio_connect.services.clio_session import get_token_manager
from clio_connect.services.token_manager import TokenLifecycleManager

router = APIRouter(prefix="/clio", tags=["clio"])


@router.get("/status", response_model=ConnectionStatus)
def connection_status(manager: TokenLifecycleManager = Depends(get_token_manager)):
    return manager.check_connection(settings.DEFAULT_USER_ID)


@router.get("/user")
def current_clio_user(manager: TokenLifecycleManager = Depends(get_token_manager)):
    account = manager.get_account(settings.DEFAULT_USER_ID)
    if account is None:
        raise HTTPException(
            status_code=401,
            detail="No access token found. Please connect to CLIO first.",
        )
    return {"user": account}


@router.post("/disconnect", response_model=DisconnectOut)
def disconnect(manager: TokenLifecycleManager = Depends(get_token_manager)):
    if not manager.revoke(settings.DEFAULT_USER_ID):
        raise HTTPException(
            status_code=500,
            detail="Failed to disconnect from CLIO. Please try again.",
        )
    return DisconnectOut(
        success=True,
        message="Successfully disconnected from CLIO. You can reconnect at any time.",
    )
