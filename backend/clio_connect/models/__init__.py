from clio_connect.models.base import Base
from clio_connect.models.clio_token import ClioToken
from clio_connect.models.oauth_state import OAuthState

__all__ = [
    "Base",
    "ClioToken",
    "OAuthState",
]
