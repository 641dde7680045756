from dataclasses import dataclass


@dataclass(frozen=True)
class AccessToken:
    """FIWARE token forwarded to the context broker as ``X-Auth-Token``."""

    access_token: str
