"""
Field access strategies used by specifications.

Two interchangeable accessors resolve a field name on a target:

- DescriptorFieldAccessor: targets that describe their own fields, i.e.
  Pydantic models (``model_fields``) and protobuf-style messages
  (``DESCRIPTOR.fields_by_name``)
- ReflectionFieldAccessor: plain objects and mappings, by key, attribute
  or getter naming convention
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from pydantic import BaseModel

from specforge.core.errors import FieldResolutionError
from specforge.core.naming import camel_to_snake, snake_to_camel


def _name_variants(field: str) -> list[str]:
    """``role_id`` -> ``[role_id, roleId]``; ``roleId`` -> ``[roleId, role_id]``."""
    variants = [field]
    for candidate in (snake_to_camel(field), camel_to_snake(field)):
        if candidate not in variants:
            variants.append(candidate)
    return variants


class FieldAccessor(Protocol):
    """Reads a named field from a target object."""

    def get(self, target: Any, field: str) -> Any:
        """
        Raises:
            FieldResolutionError: If the target has no such field
        """
        ...


class DescriptorFieldAccessor:
    """Resolves fields through the target's own field descriptors."""

    @staticmethod
    def supports(target: Any) -> bool:
        if isinstance(target, BaseModel):
            return True
        descriptor = getattr(type(target), "DESCRIPTOR", None)
        return descriptor is not None and hasattr(descriptor, "fields_by_name")

    def get(self, target: Any, field: str) -> Any:
        if isinstance(target, BaseModel):
            declared = type(target).model_fields
            for name in _name_variants(field):
                if name in declared:
                    return getattr(target, name)
            for name, info in declared.items():
                if info.alias == field:
                    return getattr(target, name)
            raise FieldResolutionError(field, target)

        fields_by_name = type(target).DESCRIPTOR.fields_by_name
        for name in _name_variants(field):
            descriptor = fields_by_name.get(name)
            if descriptor is not None:
                return getattr(target, descriptor.name)
        raise FieldResolutionError(field, target)


class ReflectionFieldAccessor:
    """Resolves fields by naming convention.

    Lookup order: mapping key, attribute, then ``get_<field>()``,
    ``get<Field>()``, ``is_<field>()`` and ``is<Field>()`` getters. Each step
    tries the snake_case and camelCase spellings.
    """

    def get(self, target: Any, field: str) -> Any:
        variants = _name_variants(field)

        if isinstance(target, Mapping):
            for name in variants:
                if name in target:
                    return target[name]
            raise FieldResolutionError(field, target)

        for name in variants:
            if hasattr(target, name):
                value = getattr(target, name)
                if not callable(value):
                    return value

        capitalized = field[:1].upper() + snake_to_camel(field)[1:]
        snake = camel_to_snake(field)
        getters = (f"get_{snake}", f"get{capitalized}", f"is_{snake}", f"is{capitalized}")
        for getter in getters:
            method = getattr(target, getter, None)
            if callable(method):
                return method()

        # Boolean-style names such as ``isAdmin`` may already be the getter
        method = getattr(target, field, None)
        if callable(method):
            return method()

        raise FieldResolutionError(field, target)


DESCRIPTOR_ACCESSOR = DescriptorFieldAccessor()
REFLECTION_ACCESSOR = ReflectionFieldAccessor()


def accessor_for(target: Any) -> FieldAccessor:
    """Pick the accessor for a target: descriptors when available, else reflection."""
    if DescriptorFieldAccessor.supports(target):
        return DESCRIPTOR_ACCESSOR
    return REFLECTION_ACCESSOR
