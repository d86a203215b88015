"""
Entity Intermediate Representation (IR) produced by the schema compiler.

These Pydantic models are the durable contract read by downstream code
generators. Field numbers are stable identifiers: a generator must never
re-derive them from declaration order.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field as PydanticField, model_validator

from specforge.core.types import NeutralType

SCHEMA_VERSION = 1


class Field(BaseModel):
    """A single column of a model or view."""

    model_config = ConfigDict(frozen=True)

    name: str
    """Lower-cased column name."""

    type: NeutralType
    """Language-neutral type."""

    nullable: bool
    """Whether the column admits NULL."""

    field_number: int = PydanticField(..., gt=0)
    """Stable identifier within the owning entity."""

    primary_key: bool = False
    """Whether the column is part of the primary key."""

    primary_key_position: int | None = None
    """1-based position within a (possibly composite) primary key."""

    precision: int | None = None
    """Total digits, decimal columns only."""

    scale: int | None = None
    """Digits after the decimal point, decimal columns only."""

    @model_validator(mode="after")
    def _check_shape(self) -> "Field":
        if self.primary_key and (self.primary_key_position or 0) < 1:
            raise ValueError(f"Primary key field '{self.name}' needs a position >= 1")
        if self.precision is not None and self.type is not NeutralType.DECIMAL:
            raise ValueError(f"Only decimal fields carry precision, got '{self.type.value}'")
        return self


class _Entity(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    """PascalCase entity name."""

    @model_validator(mode="after")
    def _unique_field_numbers(self) -> "_Entity":
        seen: dict[int, str] = {}
        for f in self.fields:
            if f.field_number in seen:
                raise ValueError(
                    f"{self.name}: field number {f.field_number} used by both "
                    f"'{seen[f.field_number]}' and '{f.name}'"
                )
            seen[f.field_number] = f.name
        clashes = sorted(set(seen) & set(self.reserved))
        if clashes:
            raise ValueError(f"{self.name}: reserved field numbers in use: {clashes}")
        return self

    def field(self, name: str) -> Field | None:
        lowered = name.lower()
        for f in self.fields:
            if f.name == lowered:
                return f
        return None

    @property
    def primary_key(self) -> list[Field]:
        """Primary key fields ordered by position."""
        keys = [f for f in self.fields if f.primary_key]
        return sorted(keys, key=lambda f: f.primary_key_position or 0)


class Model(_Entity):
    """An entity backed by a table."""

    source_table: str
    """Lower-cased table name."""

    resource: str
    """REST-style resource slug (kebab-case)."""

    fields: tuple[Field, ...] = ()
    """Fields in declaration order."""

    reserved: tuple[int, ...] = ()
    """Retired field numbers that must never be reassigned."""

    @property
    def source(self) -> str:
        return self.source_table


class View(_Entity):
    """A read-only composite entity backed by a view."""

    source_view: str
    """Lower-cased view name."""

    resource: str
    fields: tuple[Field, ...] = ()
    reserved: tuple[int, ...] = ()

    @property
    def source(self) -> str:
        return self.source_view


class Domain(BaseModel):
    """A named group of models and views sharing a namespace."""

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str
    models: tuple[Model, ...] = ()
    views: tuple[View, ...] = ()

    def find(self, name: str, kind: str | None = None) -> Model | View | None:
        """Find an entity by name, source name, or resource slug.

        Args:
            name: ``Employee``, ``employees`` or ``employees`` resource
            kind: Restrict to ``"model"`` or ``"view"``

        Returns:
            The matching entity, or None
        """
        candidates: list[Model | View] = []
        if kind in (None, "model"):
            candidates.extend(self.models)
        if kind in (None, "view"):
            candidates.extend(self.views)

        lowered = name.lower()
        for entity in candidates:
            if lowered in (entity.name.lower(), entity.source, entity.resource):
                return entity
        return None


class EntityIR(BaseModel):
    """Complete entity IR document.

    Serialized as YAML (``models.yaml``) with domains ordered by name.
    """

    model_config = ConfigDict(frozen=True)

    schema_version: int = SCHEMA_VERSION
    """IR format version."""

    organization: str = "appget"
    """Owning organization; its domain uses the bare namespace root."""

    domains: dict[str, Domain] = PydanticField(default_factory=dict)
    """Domains keyed by name."""

    def iter_entities(self):
        """Yield ``(domain_name, entity)`` for every model and view."""
        for domain_name in sorted(self.domains):
            domain = self.domains[domain_name]
            for model in domain.models:
                yield domain_name, model
            for view in domain.views:
                yield domain_name, view

    def find_entity(
        self, name: str, domain: str | None = None, kind: str | None = None
    ) -> Model | View | None:
        """Find an entity, optionally scoped to one domain and kind."""
        if domain is not None:
            scoped = self.domains.get(domain)
            return scoped.find(name, kind) if scoped else None
        for domain_name in sorted(self.domains):
            entity = self.domains[domain_name].find(name, kind)
            if entity is not None:
                return entity
        return None

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        domains: dict[str, Any] = {}
        for name in sorted(self.domains):
            domains[name] = self.domains[name].model_dump(
                mode="json", exclude={"name"}, exclude_defaults=True
            )
        return {
            "schema_version": self.schema_version,
            "organization": self.organization,
            "domains": domains,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EntityIR":
        raw_domains = data.get("domains") or {}
        domains = {
            name: Domain(name=name, **(body or {})) for name, body in raw_domains.items()
        }
        return cls(
            schema_version=data.get("schema_version", SCHEMA_VERSION),
            organization=data.get("organization", "appget"),
            domains=domains,
        )

    def to_yaml(self) -> str:
        """Serialize to a YAML document."""
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)

    @classmethod
    def from_yaml(cls, text: str) -> "EntityIR":
        """Deserialize from a YAML document."""
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError("Entity IR must be a YAML mapping")
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: str | Path) -> "EntityIR":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Entity IR not found: {path}")
        return cls.from_yaml(path.read_text(encoding="utf-8"))

    def write(self, path: str | Path) -> None:
        Path(path).write_text(self.to_yaml(), encoding="utf-8")
