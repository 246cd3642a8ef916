"""Configuration for the template repository loader."""

from __future__ import annotations

import dataclasses
import os
import re
from dataclasses import dataclass, field
from typing import Any

from template_repository.errors import ConfigError
from template_repository.models import SourceMode

_REPO_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")

# Options that reconfigure() accepts. Everything else is fixed at construction.
RECONFIGURABLE_FIELDS: frozenset[str] = frozenset({
    "repo", "branch", "token", "repo_path", "cache_ttl", "source",
})


@dataclass(frozen=True)
class RepositoryConfig:
    """Immutable settings. reconfigure() swaps in a new instance."""

    repo: str = "CEREMA/airjobs"
    branch: str = "main"
    token: str | None = field(default=None, repr=False)
    repo_path: str = "src/repository"
    cache_ttl: int = 300
    source: SourceMode = SourceMode.LOCAL
    api_url: str = "https://api.github.com"
    timeout: float = 30.0

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "source", SourceMode.parse(self.source))
        except ValueError as exc:
            raise ConfigError(str(exc)) from None
        if not isinstance(self.repo, str) or not _REPO_RE.match(self.repo):
            raise ConfigError(f"repo must look like 'owner/name', got {self.repo!r}")
        if not isinstance(self.branch, str) or not self.branch.strip():
            raise ConfigError("branch must be a non-empty string")
        if not isinstance(self.repo_path, str):
            raise ConfigError("repo_path must be a string")
        object.__setattr__(self, "repo_path", self.repo_path.strip("/"))
        if isinstance(self.cache_ttl, bool) or not isinstance(self.cache_ttl, int) or self.cache_ttl < 0:
            raise ConfigError(f"cache_ttl must be a non-negative integer, got {self.cache_ttl!r}")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout!r}")
        object.__setattr__(self, "api_url", self.api_url.rstrip("/"))
        # An empty token means "no credential".
        if not self.token:
            object.__setattr__(self, "token", None)

    @classmethod
    def from_env(cls) -> RepositoryConfig:
        try:
            cache_ttl = int(os.getenv("REPOSITORY_CACHE_TTL", "300"))
            timeout = float(os.getenv("REPOSITORY_TIMEOUT", "30"))
        except ValueError as exc:
            raise ConfigError(f"invalid numeric environment value: {exc}") from exc
        return cls(
            repo=os.getenv("GITHUB_REPO", "CEREMA/airjobs"),
            branch=os.getenv("GITHUB_BRANCH", "main"),
            token=os.getenv("GITHUB_TOKEN") or None,
            repo_path=os.getenv("REPOSITORY_PATH", "src/repository"),
            cache_ttl=cache_ttl,
            # Start with local until the GitHub repository is populated.
            source=os.getenv("REPOSITORY_SOURCE", "local"),
            api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
            timeout=timeout,
        )

    def merged(self, **changes: Any) -> RepositoryConfig:
        """Return a copy with the non-None changes applied. Unknown keys raise ConfigError."""
        unknown = set(changes) - RECONFIGURABLE_FIELDS
        if unknown:
            raise ConfigError(f"unknown configuration option(s): {sorted(unknown)}")
        updates = {k: v for k, v in changes.items() if v is not None}
        if not updates:
            return self
        return dataclasses.replace(self, **updates)

    def contents_path(self, sub_path: str) -> str:
        """Repository-internal path for a sub-path under repo_path."""
        sub_path = sub_path.strip("/")
        if not self.repo_path:
            return sub_path
        return f"{self.repo_path}/{sub_path}"

    @property
    def headers(self) -> dict[str, str]:
        h: dict[str, str] = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "AirJobs-Repository-Sync",
        }
        if self.token:
            h["Authorization"] = f"token {self.token}"
        return h
