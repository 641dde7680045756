# ngsi_source/core/errors.py
"""Errors raised by the NGSI transport layer."""
from __future__ import annotations


class NgsiError(Exception):
    """The context broker rejected a request or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ProxyConnectionError(NgsiError):
    """The NGSI proxy used for notifications is unavailable."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    @property
    def cause_message(self) -> str:
        return str(self.cause) if self.cause is not None else self.message
