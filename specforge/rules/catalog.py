"""Metadata category catalog loaded from ``metadata.yaml``."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterator

import yaml

from .ir import MetadataCategory

logger = logging.getLogger(__name__)


class MetadataCatalog:
    """The metadata categories rules may gate on.

    Expected YAML layout::

        metadata:
          sso:
            enabled: true
            description: Single sign-on session
            fields:
              - name: authenticated
                type: boolean

    Legacy type names (``boolean``, ``int``, ``String`` ...) are normalised
    to neutral types on load.
    """

    def __init__(self, categories: dict[str, MetadataCategory] | None = None):
        self._categories = dict(categories or {})

    def __contains__(self, name: str) -> bool:
        return name in self._categories

    def __iter__(self) -> Iterator[MetadataCategory]:
        return iter(self._categories.values())

    def __len__(self) -> int:
        return len(self._categories)

    def get(self, name: str) -> MetadataCategory | None:
        return self._categories.get(name)

    def enabled(self) -> dict[str, MetadataCategory]:
        """Enabled categories, in declaration order."""
        return {name: c for name, c in self._categories.items() if c.enabled}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MetadataCatalog":
        raw = data.get("metadata") or {}
        categories = {
            name: MetadataCategory(name=name, **(body or {})) for name, body in raw.items()
        }
        return cls(categories)

    @classmethod
    def from_yaml(cls, text: str) -> "MetadataCatalog":
        return cls.from_dict(yaml.safe_load(text) or {})

    @classmethod
    def load(cls, path: str | Path) -> "MetadataCatalog":
        """Load a catalog file.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Metadata catalog not found: {path}")
        catalog = cls.from_yaml(path.read_text(encoding="utf-8"))
        logger.debug(
            "Loaded %d metadata categories (%d enabled) from %s",
            len(catalog),
            len(catalog.enabled()),
            path,
        )
        return catalog
