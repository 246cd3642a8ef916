"""Tiered loader for step and workflow templates.

Templates come from a GitHub repository, fall back to an on-disk mirror of
the last successful fetch, and finally to defaults bundled with the package.

Public surface:
    TemplateRepository — the loader (load, get_by_id, refresh, status, reconfigure).
    RepositoryConfig   — immutable configuration, from_env() or explicit.
    CollectionType     — steps / workflows.
    SourceMode         — github / local.
"""

from template_repository.config import RepositoryConfig
from template_repository.errors import (
    ConfigError,
    DirectoryError,
    ParseError,
    RemoteError,
    RepositoryError,
)
from template_repository.loader import TemplateRepository
from template_repository.models import CollectionType, ItemSource, SourceMode

__all__ = [
    "CollectionType",
    "ConfigError",
    "DirectoryError",
    "ItemSource",
    "ParseError",
    "RemoteError",
    "RepositoryConfig",
    "RepositoryError",
    "SourceMode",
    "TemplateRepository",
]
