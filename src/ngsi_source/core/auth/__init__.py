from ngsi_source.core.auth.models import AccessToken
from ngsi_source.core.auth.provider import StaticTokenProvider, TokenProvider

__all__ = ["AccessToken", "StaticTokenProvider", "TokenProvider"]
