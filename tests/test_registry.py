"""Tests for the field-number registry."""

import pytest

from specforge.core.errors import RegistryInvariantError
from specforge.schema import FieldNumberRegistry


class TestFieldNumberRegistry:
    """Test number assignment and invariant checks."""

    def test_numbers_start_at_one(self):
        registry = FieldNumberRegistry()
        assert registry.number_for("appget", "Employee", "name") == 1
        assert registry.number_for("appget", "Employee", "age") == 2
        assert registry.number_for("appget", "Employee", "name") == 1

    def test_entities_are_independent(self):
        """Each entity has its own sequence."""
        registry = FieldNumberRegistry()
        registry.number_for("appget", "Employee", "name")
        assert registry.number_for("appget", "Salary", "amount") == 1
        assert registry.number_for("hr", "Employee", "name") == 1

    def test_next_number_follows_high_water_mark(self):
        """New numbers come after the largest ever seen, not after the count."""
        registry = FieldNumberRegistry()
        registry.record("appget", "Employee", "name", 7)
        assert registry.number_for("appget", "Employee", "age") == 8

    def test_conflicting_number_is_rejected(self):
        registry = FieldNumberRegistry()
        registry.record("appget", "Employee", "name", 1)
        with pytest.raises(RegistryInvariantError, match="held by 'name'"):
            registry.record("appget", "Employee", "age", 1)

    def test_renumbering_is_rejected(self):
        registry = FieldNumberRegistry()
        registry.record("appget", "Employee", "name", 1)
        with pytest.raises(RegistryInvariantError, match="cannot become 2"):
            registry.record("appget", "Employee", "name", 2)

    def test_reserved_numbers_are_skipped(self):
        """Reserved numbers are never handed out or recorded."""
        registry = FieldNumberRegistry()
        registry.reserve("appget", "Employee", 3)
        assert registry.number_for("appget", "Employee", "name") == 4
        with pytest.raises(RegistryInvariantError, match="reserved"):
            registry.record("appget", "Employee", "age", 3)

    def test_retired_numbers(self):
        """Known fields missing from the live set are retired."""
        registry = FieldNumberRegistry()
        for field in ("a", "b", "c"):
            registry.number_for("appget", "Thing", field)
        registry.reserve("appget", "Thing", 9)
        assert registry.retired_numbers("appget", "Thing", ["a", "c"]) == (2, 9)

    def test_seed_from_entity_ir(self, entity_ir):
        """Seeding reproduces every number in the IR."""
        registry = FieldNumberRegistry.from_entity_ir(entity_ir)
        snapshot = registry.snapshot()
        assert snapshot[("appget", "Employee", "age")] == 2
        assert snapshot[("appget", "Salary", "amount")] == 2
        assert len(registry) == sum(len(e.fields) for _, e in entity_ir.iter_entities())
