"""Exception types raised by the cloning pipeline."""

from __future__ import annotations


class ClonerError(Exception):
    """Base class for pipeline errors."""


class InvalidUrl(ClonerError, ValueError):
    """The input could not be normalized into an http(s) URL."""


class NavigationFailure(ClonerError):
    """The browser could not load the target page."""


class AssetFetchFailure(ClonerError):
    """A single asset could not be downloaded or written."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class CssProcessingFailure(ClonerError):
    """A downloaded stylesheet could not be read, rewritten or saved."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class CloneTimeout(ClonerError, TimeoutError):
    """The whole pipeline exceeded its configured time budget."""
