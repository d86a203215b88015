"""
Field-number registry for stable numbering across recompilations.

The registry is an explicit value owned by one compilation pass: seed it from
the previously emitted entity IR (load-before), let the compiler draw numbers
from it, and persist the new IR (save-after). Numbers are never reused: each
entity keeps a high-water mark, and numbers of removed fields are carried
forward as reserved.
"""

from __future__ import annotations

import logging

from specforge.core.errors import RegistryInvariantError
from .ir import EntityIR

logger = logging.getLogger(__name__)

RegistryKey = tuple[str, str, str]
"""(domain, entity, field)"""


class FieldNumberRegistry:
    """Assigns and remembers field numbers per (domain, entity, field)."""

    def __init__(self) -> None:
        self._numbers: dict[RegistryKey, int] = {}
        self._high_water: dict[tuple[str, str], int] = {}
        self._reserved: dict[tuple[str, str], set[int]] = {}

    def __len__(self) -> int:
        return len(self._numbers)

    def __contains__(self, key: RegistryKey) -> bool:
        return key in self._numbers

    @classmethod
    def from_entity_ir(cls, entity_ir: EntityIR | None) -> "FieldNumberRegistry":
        registry = cls()
        if entity_ir is not None:
            registry.seed_from(entity_ir)
        return registry

    def seed_from(self, entity_ir: EntityIR) -> None:
        """Record every field number and reservation of a previously emitted IR."""
        for domain_name, entity in entity_ir.iter_entities():
            for number in entity.reserved:
                self.reserve(domain_name, entity.name, number)
            for field in entity.fields:
                self.record(domain_name, entity.name, field.name, field.field_number)
        logger.debug("Seeded %d field number(s) from previous entity IR", len(self))

    def record(self, domain: str, entity: str, field: str, number: int) -> None:
        """Register an existing assignment.

        Raises:
            RegistryInvariantError: If the number is reserved or held by
                another field of the same entity, or the field already has a
                different number.
        """
        key = (domain, entity, field)
        entity_key = (domain, entity)
        existing = self._numbers.get(key)
        if existing is not None and existing != number:
            raise RegistryInvariantError(
                f"{domain}/{entity}/{field} is registered as {existing}, cannot become {number}"
            )
        if number in self._reserved.get(entity_key, ()):
            raise RegistryInvariantError(
                f"{domain}/{entity}: field number {number} is reserved, "
                f"cannot be assigned to '{field}'"
            )
        holder = self._holder_of(domain, entity, number)
        if holder is not None and holder != field:
            raise RegistryInvariantError(
                f"{domain}/{entity}: field number {number} held by '{holder}', "
                f"cannot also be assigned to '{field}'"
            )
        self._numbers[key] = number
        self._bump(entity_key, number)

    def reserve(self, domain: str, entity: str, number: int) -> None:
        """Retire a number so it is never handed out again within the entity."""
        entity_key = (domain, entity)
        self._reserved.setdefault(entity_key, set()).add(number)
        self._bump(entity_key, number)

    def number_for(self, domain: str, entity: str, field: str) -> int:
        """Return the field's number, assigning the next free one if new."""
        key = (domain, entity, field)
        if key in self._numbers:
            return self._numbers[key]

        number = self.high_water_mark(domain, entity) + 1
        self.record(domain, entity, field, number)
        logger.debug("Assigned field number %d to %s/%s/%s", number, domain, entity, field)
        return number

    def retired_numbers(self, domain: str, entity: str, live_fields: list[str]) -> tuple[int, ...]:
        """Numbers of this entity not held by any of ``live_fields``.

        Covers earlier reservations plus fields known to the registry that the
        current pass no longer declares.
        """
        live = set(live_fields)
        retired = set(self._reserved.get((domain, entity), ()))
        for (d, e, f), n in self._numbers.items():
            if d == domain and e == entity and f not in live:
                retired.add(n)
        return tuple(sorted(retired))

    def high_water_mark(self, domain: str, entity: str) -> int:
        """Largest number ever assigned or reserved within an entity (0 if none)."""
        return self._high_water.get((domain, entity), 0)

    def snapshot(self) -> dict[RegistryKey, int]:
        return dict(self._numbers)

    def _bump(self, entity_key: tuple[str, str], number: int) -> None:
        self._high_water[entity_key] = max(self._high_water.get(entity_key, 0), number)

    def _holder_of(self, domain: str, entity: str, number: int) -> str | None:
        for (d, e, f), n in self._numbers.items():
            if d == domain and e == entity and n == number:
                return f
        return None
