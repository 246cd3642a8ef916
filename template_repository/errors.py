"""Error taxonomy for the template repository.

Only ConfigError is meant to reach callers. The loader catches the other
errors at the batch or listing level and turns them into fallbacks.
"""

from __future__ import annotations


class RepositoryError(Exception):
    """Base class for every error raised inside template_repository."""


class RemoteError(RepositoryError):
    """Non-2xx response, transport failure, or unexpected payload shape from GitHub."""

    def __init__(self, message: str, status_code: int | None = None, path: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.path = path

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"{base} (HTTP {self.status_code})"
        return base


class ParseError(RepositoryError):
    """A single item file is not valid JSON or is not a template object with an id."""

    def __init__(self, message: str, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class DirectoryError(RepositoryError):
    """A local directory (mirror or bundled) could not be listed."""


class ConfigError(RepositoryError, ValueError):
    """Malformed configuration. Raised at construction or reconfigure time."""
