from abc import ABC, abstractmethod

from ngsi_source.core.auth.models import AccessToken


class TokenProvider(ABC):
    @abstractmethod
    async def get_token(self) -> AccessToken:
        """
        Return the token to forward to the context broker.
        Implementations must refresh or re-authenticate if needed.
        """
        ...


class StaticTokenProvider(TokenProvider):
    """Provides a fixed FIWARE token supplied by the host."""

    def __init__(self, token: str) -> None:
        self._token = AccessToken(token)

    async def get_token(self) -> AccessToken:
        return self._token
