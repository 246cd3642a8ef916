"""Local tiers: the write-through mirror and the bundled defaults."""

from template_repository.store.bundled import BundledDefaults
from template_repository.store.mirror import MirrorStore

__all__ = ["BundledDefaults", "MirrorStore"]
