"""Read-only default templates shipped with the package."""

from __future__ import annotations

import logging
from pathlib import Path

from template_repository.errors import DirectoryError
from template_repository.models import CollectionType, Item
from template_repository.store.files import read_items

logger = logging.getLogger(__name__)

_DEFAULT_ROOT = Path(__file__).parent.parent / "repository"


class BundledDefaults:
    """Terminal fallback tier. read() never raises; worst case is []."""

    def __init__(self, root: Path = _DEFAULT_ROOT) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def read(self, kind: CollectionType) -> list[Item]:
        type_dir = self._root / CollectionType(kind).value
        try:
            return read_items(type_dir, "BundledDefaults")
        except DirectoryError as exc:
            logger.error("[BundledDefaults] Failed to read local %s directory: %s", kind, exc)
        except Exception:
            logger.exception("[BundledDefaults] Unexpected error reading %s", type_dir)
        return []
