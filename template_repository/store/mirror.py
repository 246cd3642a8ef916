"""On-disk mirror of the last successful GitHub fetch.

Layout: ``<root>/<kind>/<id>.json``, one pretty-printed document per item.
The mirror is only ever written from a successful remote listing, never
from bundled defaults or from a mirror read.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from template_repository.errors import DirectoryError
from template_repository.models import JSON_SUFFIX, CollectionType, Item
from template_repository.store.files import read_items

logger = logging.getLogger(__name__)

_DEFAULT_ROOT = Path(__file__).parent.parent / ".cache"


def _safe_file_name(item_id: str) -> str | None:
    """File name for an item id, or None when the id would escape the kind directory."""
    if not item_id or item_id in (".", "..") or "/" in item_id or "\\" in item_id or "\x00" in item_id:
        return None
    return f"{item_id}{JSON_SUFFIX}"


class MirrorStore:
    """Local-disk fallback tier. Pure I/O, no caching."""

    def __init__(self, root: Path = _DEFAULT_ROOT) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def directory(self, kind: CollectionType) -> Path:
        return self._root / CollectionType(kind).value

    def write(self, kind: CollectionType, items: list[Item]) -> int:
        """Overwrite the mirror file of every item. Returns how many were written.

        Per-item failures are logged and skipped; nothing is raised.
        """
        type_dir = self.directory(kind)
        try:
            type_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("[MirrorStore] Failed to save %s to cache: %s", kind, exc)
            return 0

        written = 0
        for item in items:
            item_id = item.get("id")
            name = _safe_file_name(item_id) if isinstance(item_id, str) else None
            if name is None:
                logger.error("[MirrorStore] Skipping %s item with unusable id %r", kind, item_id)
                continue
            try:
                content = json.dumps(item, indent=2, ensure_ascii=False)
                (type_dir / name).write_text(content, encoding="utf-8")
                written += 1
            except (OSError, TypeError, ValueError) as exc:
                logger.error("[MirrorStore] Failed to save %s/%s: %s", kind, name, exc)
        logger.debug("[MirrorStore] Wrote %d/%d %s to %s", written, len(items), kind, type_dir)
        return written

    def read(self, kind: CollectionType) -> list[Item] | None:
        """Items from the last successful fetch, or None when there are none."""
        type_dir = self.directory(kind)
        if not type_dir.is_dir():
            return None
        try:
            items = read_items(type_dir, "MirrorStore")
        except DirectoryError as exc:
            logger.error("[MirrorStore] %s", exc)
            return None
        return items or None
