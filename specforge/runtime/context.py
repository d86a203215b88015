"""Request-scoped metadata context consumed by rule gates."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Iterator

from specforge.core.naming import header_name
from specforge.core.types import NeutralType
from specforge.rules.catalog import MetadataCatalog

logger = logging.getLogger(__name__)

_TRUE_VALUES = frozenset({"true", "1", "yes"})
_FALSE_VALUES = frozenset({"false", "0", "no"})


def _parse_header_value(raw: str, field_type: NeutralType) -> Any:
    raw = raw.strip()
    if field_type is NeutralType.BOOL:
        lowered = raw.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"not a boolean: {raw!r}")
    if field_type in (NeutralType.INT32, NeutralType.INT64):
        return int(raw)
    if field_type is NeutralType.FLOAT64:
        return float(raw)
    if field_type is NeutralType.DECIMAL:
        try:
            return Decimal(raw)
        except InvalidOperation:
            raise ValueError(f"not a decimal: {raw!r}") from None
    return raw


class MetadataContext(Mapping):
    """Immutable mapping of category name -> context object.

    Context objects can be anything a field accessor can read: dicts,
    dataclasses, Pydantic models.
    """

    def __init__(self, categories: Mapping[str, Any] | None = None):
        self._categories = MappingProxyType(dict(categories or {}))

    def __getitem__(self, category: str) -> Any:
        return self._categories[category]

    def __iter__(self) -> Iterator[str]:
        return iter(self._categories)

    def __len__(self) -> int:
        return len(self._categories)

    def __repr__(self) -> str:
        return f"MetadataContext({dict(self._categories)!r})"

    def with_category(self, name: str, context: Any) -> "MetadataContext":
        """Return a new context with ``name`` added or replaced."""
        categories = dict(self._categories)
        categories[name] = context
        return MetadataContext(categories)

    @classmethod
    def from_headers(cls, headers: Mapping[str, str], catalog: MetadataCatalog) -> "MetadataContext":
        """
        Build a context from request headers.

        Each enabled category's fields are read from ``X-<Category>-<Field>``
        headers (case-insensitive) and typed per the catalog. Categories with
        no header present are omitted, so gates on them fail closed.
        Unparseable values are dropped with a warning.
        """
        lowered = {key.lower(): value for key, value in headers.items()}
        categories: dict[str, dict[str, Any]] = {}

        for name, category in catalog.enabled().items():
            values: dict[str, Any] = {}
            for field in category.fields:
                header = header_name(name, field.name)
                raw = lowered.get(header.lower())
                if raw is None:
                    continue
                try:
                    values[field.name] = _parse_header_value(raw, field.type)
                except ValueError as exc:
                    logger.warning("Ignoring header %s: %s", header, exc)
            if values:
                categories[name] = values

        return cls(categories)
