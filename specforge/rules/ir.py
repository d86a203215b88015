"""
Rule Intermediate Representation (IR) produced by the rule compiler.

These Pydantic models describe the compiled rule set (``specs.yaml``):
- A catalog of metadata categories that rules may gate on
- Rules with metadata gates, a main predicate and two outcome statuses

Condition values are a tagged union fixed at compile time: the literal is
stored with its neutral type so the evaluator never re-infers types from text.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field as PydanticField,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    model_validator,
)

from specforge.core.types import NeutralType, to_neutral

SCHEMA_VERSION = 1

Operator = Literal["==", "!=", ">", "<", ">=", "<="]
ORDERING_OPERATORS = frozenset({">", "<", ">=", "<="})

ConditionValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr]

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


def infer_value_type(value: Any) -> NeutralType:
    """Neutral type of a coerced literal. Integers outside int32 widen to int64."""
    if isinstance(value, bool):
        return NeutralType.BOOL
    if isinstance(value, int):
        return NeutralType.INT32 if INT32_MIN <= value <= INT32_MAX else NeutralType.INT64
    if isinstance(value, float):
        return NeutralType.FLOAT64
    return NeutralType.STRING


def _cast_value(value: Any, value_type: NeutralType) -> Any:
    """Cast a loaded literal to the family named by ``value_type``."""
    if value_type is NeutralType.BOOL:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
    elif value_type in (NeutralType.INT32, NeutralType.INT64):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            return int(value)
    elif value_type in (NeutralType.FLOAT64, NeutralType.DECIMAL):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value) if value_type is NeutralType.FLOAT64 else value
        if isinstance(value, str):
            return float(value)
    else:
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)
    raise ValueError(f"Value {value!r} is not a valid {value_type.value}")


# =============================================================================
# Metadata catalog
# =============================================================================


class MetadataField(BaseModel):
    """A typed field of a metadata category."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: NeutralType = NeutralType.STRING

    @model_validator(mode="before")
    @classmethod
    def _normalise_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("type"), str):
            data = dict(data)
            data["type"] = to_neutral(data["type"])
        return data


class MetadataCategory(BaseModel):
    """A named group of request-scoped values (e.g. ``sso``, ``roles``)."""

    model_config = ConfigDict(frozen=True)

    name: str
    enabled: bool = True
    description: str = ""
    fields: tuple[MetadataField, ...] = ()

    def field(self, name: str) -> MetadataField | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None


# =============================================================================
# Conditions
# =============================================================================


class Condition(BaseModel):
    """A leaf comparison ``field <operator> value``."""

    model_config = ConfigDict(frozen=True)

    field: str
    """Field read from the target (or metadata context object)."""

    operator: Operator
    """Symbolic comparison operator."""

    value: ConditionValue
    """Literal fixed at compile time."""

    value_type: NeutralType
    """Neutral type of ``value``."""

    @model_validator(mode="before")
    @classmethod
    def _tag_value(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("value_type") is None:
            data["value_type"] = infer_value_type(data.get("value"))
        else:
            value_type = NeutralType(data["value_type"])
            data["value_type"] = value_type
            data["value"] = _cast_value(data.get("value"), value_type)
        return data

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "operator": self.operator,
            "value": self.value,
            "value_type": self.value_type.value,
        }


class CompoundExpression(BaseModel):
    """An AND/OR composition of conditions."""

    model_config = ConfigDict(frozen=True)

    operator: Literal["AND", "OR"]
    clauses: tuple[Condition, ...] = PydanticField(..., min_length=1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operator": self.operator,
            "clauses": [c.to_dict() for c in self.clauses],
        }


class Target(BaseModel):
    """The model or view a rule applies to."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: Literal["model", "view"] = PydanticField("model", alias="type")
    name: str
    domain: str | None = None


# =============================================================================
# Rules
# =============================================================================


class Rule(BaseModel):
    """A compiled business rule.

    ``requires`` gates are evaluated strictly before ``conditions``. A rule
    with gates and no metadata at evaluation time fails closed.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    """Unique rule name (from the ``@rule:`` tag)."""

    target: Target
    """Entity the rule evaluates."""

    blocking: bool = False
    """Whether failure should reject the enclosing operation."""

    requires: dict[str, tuple[Condition, ...]] = PydanticField(default_factory=dict)
    """Metadata gates: category -> conditions that must all hold."""

    conditions: Union[tuple[Condition, ...], CompoundExpression]
    """Main predicate: a flat list (implicit AND) or a compound expression."""

    on_success: str
    """Status reported when the rule is satisfied."""

    on_failure: str
    """Status reported otherwise."""

    @model_validator(mode="after")
    def _has_conditions(self) -> "Rule":
        if isinstance(self.conditions, tuple) and not self.conditions:
            raise ValueError(f"Rule '{self.name}' has no conditions")
        return self

    def iter_conditions(self):
        """Yield every main-predicate condition, flattening compounds."""
        if isinstance(self.conditions, CompoundExpression):
            yield from self.conditions.clauses
        else:
            yield from self.conditions

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "target": self.target.model_dump(by_alias=True),
        }
        if self.blocking:
            data["blocking"] = True
        if self.requires:
            data["requires"] = {
                category: [c.to_dict() for c in conditions]
                for category, conditions in self.requires.items()
            }
        if isinstance(self.conditions, CompoundExpression):
            data["conditions"] = self.conditions.to_dict()
        else:
            data["conditions"] = [c.to_dict() for c in self.conditions]
        data["then"] = {"status": self.on_success}
        data["else"] = {"status": self.on_failure}
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Rule":
        conditions = data.get("conditions") or []
        if isinstance(conditions, dict):
            conditions = CompoundExpression.model_validate(conditions)
        else:
            conditions = tuple(Condition.model_validate(c) for c in conditions)
        requires = {
            category: tuple(Condition.model_validate(c) for c in items or [])
            for category, items in (data.get("requires") or {}).items()
        }
        return cls(
            name=data["name"],
            target=Target.model_validate(data["target"]),
            blocking=bool(data.get("blocking", False)),
            requires=requires,
            conditions=conditions,
            on_success=(data.get("then") or {}).get("status"),
            on_failure=(data.get("else") or {}).get("status"),
        )


class RuleSetIR(BaseModel):
    """Complete rule IR document (``specs.yaml``).

    Only enabled metadata categories are carried in ``metadata``.
    """

    model_config = ConfigDict(frozen=True)

    schema_version: int = SCHEMA_VERSION
    metadata: dict[str, MetadataCategory] = PydanticField(default_factory=dict)
    rules: tuple[Rule, ...] = ()

    def rule(self, name: str) -> Rule | None:
        for r in self.rules:
            if r.name == name:
                return r
        return None

    def rules_for(self, target: str) -> list[Rule]:
        """Rules whose target name matches ``target`` (case-insensitive)."""
        lowered = target.lower()
        return [r for r in self.rules if r.target.name.lower() == lowered]

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {}
        for name, category in self.metadata.items():
            body: dict[str, Any] = {}
            if category.description:
                body["description"] = category.description
            body["fields"] = [{"name": f.name, "type": f.type.value} for f in category.fields]
            metadata[name] = body
        return {
            "schema_version": self.schema_version,
            "metadata": metadata,
            "rules": [r.to_dict() for r in self.rules],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RuleSetIR":
        metadata = {
            name: MetadataCategory(name=name, **(body or {}))
            for name, body in (data.get("metadata") or {}).items()
        }
        return cls(
            schema_version=data.get("schema_version", SCHEMA_VERSION),
            metadata=metadata,
            rules=tuple(Rule.from_dict(r) for r in data.get("rules") or []),
        )

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)

    @classmethod
    def from_yaml(cls, text: str) -> "RuleSetIR":
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError("Rule IR must be a YAML mapping")
        try:
            return cls.from_dict(data)
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed rule IR: {e!r}") from e

    @classmethod
    def load(cls, path: str | Path) -> "RuleSetIR":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Rule IR not found: {path}")
        return cls.from_yaml(path.read_text(encoding="utf-8"))

    def write(self, path: str | Path) -> None:
        Path(path).write_text(self.to_yaml(), encoding="utf-8")
