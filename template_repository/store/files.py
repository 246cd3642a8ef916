"""Shared on-disk helpers for the mirror and bundled tiers."""

from __future__ import annotations

import logging
from pathlib import Path

from template_repository.errors import DirectoryError, ParseError
from template_repository.models import JSON_SUFFIX, Item, parse_item

logger = logging.getLogger(__name__)


def read_items(directory: Path, label: str) -> list[Item]:
    """Parse every *.json file in directory, sorted by file name.

    Raises DirectoryError when the directory itself cannot be listed.
    Unreadable or unparsable files are logged and skipped.
    """
    try:
        names = sorted(p.name for p in directory.iterdir())
    except OSError as exc:
        raise DirectoryError(f"cannot read {directory}: {exc}") from exc

    items: list[Item] = []
    for name in names:
        if not name.endswith(JSON_SUFFIX):
            continue
        path = directory / name
        try:
            items.append(parse_item(path.read_bytes(), source=str(path)))
        except (OSError, ParseError) as exc:
            logger.error("[%s] Failed to load %s: %s", label, path, exc)
    return items
