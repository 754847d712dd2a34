"""Exceptions raised by linewatch."""

from typing import Optional


class LinewatchError(Exception):
    """Base class for linewatch errors."""


class UpstreamUnavailable(LinewatchError):
    """The static schedule source or the real-time feed could not be read."""

    def __init__(self, source: str, message: str = "") -> None:
        self.source = source
        super().__init__(f"{source} unavailable: {message}" if message else f"{source} unavailable")


class DecodeFailure(UpstreamUnavailable):
    """The feed was fetched but its bytes did not parse as a FeedMessage."""

    def __init__(self, source: str, message: str = "", size: Optional[int] = None) -> None:
        self.size = size
        super().__init__(source, message)
