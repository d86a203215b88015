"""
Tests for the specification runtime.

Tests field access strategies, comparison semantics, compound logic,
fail-closed metadata gating and rule-set evaluation.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from types import SimpleNamespace

import pytest
from pydantic import BaseModel

from specforge.core.errors import FieldResolutionError, OperatorTypeError
from specforge.rules import CompoundExpression, Condition, MetadataCatalog
from specforge.rules import Rule as RuleIR
from specforge.rules import RuleSetIR, Target
from specforge.runtime import (
    CompoundSpecification,
    DescriptorFieldAccessor,
    MetadataContext,
    ReflectionFieldAccessor,
    Rule,
    RuleEngine,
    Specification,
    accessor_for,
    evaluate_rules,
)


class Employee(BaseModel):
    name: str
    age: int
    role_id: str | None = None
    is_admin: bool = False


@dataclass
class SsoContext:
    authenticated: bool
    session_id: str = ""


class LegacyBean:
    """Object exposing values only through getters."""

    def __init__(self, role_level, admin):
        self._role_level = role_level
        self._admin = admin

    def getRoleLevel(self):
        return self._role_level

    def isAdmin(self):
        return self._admin


class _FieldDescriptor:
    def __init__(self, name):
        self.name = name


class _MessageDescriptor:
    fields_by_name = {"employee_name": _FieldDescriptor("employee_name"), "age": _FieldDescriptor("age")}


class FakeMessage:
    """Protobuf-style message with a class-level DESCRIPTOR."""

    DESCRIPTOR = _MessageDescriptor()

    def __init__(self, employee_name, age):
        self.employee_name = employee_name
        self.age = age


# =============================================================================
# Field access
# =============================================================================


class TestFieldAccessors:
    """Test descriptor and reflection field access."""

    def test_dispatch(self):
        assert isinstance(accessor_for(Employee(name="a", age=1)), DescriptorFieldAccessor)
        assert isinstance(accessor_for(FakeMessage("a", 1)), DescriptorFieldAccessor)
        assert isinstance(accessor_for({"age": 1}), ReflectionFieldAccessor)
        assert isinstance(accessor_for(SsoContext(True)), ReflectionFieldAccessor)

    def test_descriptor_pydantic_model(self):
        accessor = DescriptorFieldAccessor()
        employee = Employee(name="Ada", age=36, role_id="Manager")
        assert accessor.get(employee, "age") == 36
        assert accessor.get(employee, "roleId") == "Manager"
        with pytest.raises(FieldResolutionError, match="'salary' not found on Employee"):
            accessor.get(employee, "salary")

    def test_descriptor_message(self):
        accessor = DescriptorFieldAccessor()
        message = FakeMessage("Ada", 36)
        assert accessor.get(message, "employeeName") == "Ada"
        with pytest.raises(FieldResolutionError):
            accessor.get(message, "missing")

    def test_reflection_mapping_and_attributes(self):
        accessor = ReflectionFieldAccessor()
        assert accessor.get({"roleLevel": 3}, "role_level") == 3
        assert accessor.get(SsoContext(True, "s1"), "sessionId") == "s1"
        assert accessor.get(SimpleNamespace(is_admin=True), "is_admin") is True

    def test_reflection_getters(self):
        accessor = ReflectionFieldAccessor()
        bean = LegacyBean(4, True)
        assert accessor.get(bean, "roleLevel") == 4
        assert accessor.get(bean, "role_level") == 4
        assert accessor.get(bean, "admin") is True
        assert accessor.get(bean, "isAdmin") is True

    def test_reflection_missing(self):
        with pytest.raises(FieldResolutionError):
            ReflectionFieldAccessor().get({"a": 1}, "b")


# =============================================================================
# Specifications
# =============================================================================


class TestSpecification:
    """Test leaf comparison semantics."""

    @pytest.mark.parametrize(
        "operator,value,expected",
        [
            ("==", 18, True),
            ("!=", 18, False),
            (">", 17, True),
            ("<", 18, False),
            (">=", 18, True),
            ("<=", 17, False),
        ],
    )
    def test_numeric_operators(self, operator, value, expected):
        assert Specification("age", operator, value).is_satisfied_by({"age": 18}) is expected

    def test_numeric_families_compare_by_value(self):
        assert Specification("amount", "==", 100).is_satisfied_by({"amount": Decimal("100.00")})
        assert Specification("amount", ">", 99.5).is_satisfied_by({"amount": Decimal("99.51")})
        assert Specification("ratio", "==", 0.1).is_satisfied_by({"ratio": Decimal("0.1")})

    def test_strings_and_bools_compare_exactly(self):
        assert Specification("role_id", "==", "Manager").is_satisfied_by({"role_id": "Manager"})
        assert not Specification("role_id", "==", "manager").is_satisfied_by({"role_id": "Manager"})
        assert Specification("is_admin", "==", True).is_satisfied_by({"is_admin": True})
        assert not Specification("is_admin", "==", 1).is_satisfied_by({"is_admin": True})

    def test_cross_family_equality_uses_canonical_strings(self):
        assert Specification("code", "==", 42).is_satisfied_by({"code": "42"})
        assert Specification("flag", "==", "true").is_satisfied_by({"flag": True})

    def test_ordering_on_strings_is_an_error(self):
        with pytest.raises(OperatorTypeError, match="'>'"):
            Specification("role_id", ">", 3).is_satisfied_by({"role_id": "Manager"})

    def test_ordering_on_bools_is_an_error(self):
        with pytest.raises(OperatorTypeError):
            Specification("is_admin", "<", 1).is_satisfied_by({"is_admin": False})

    def test_missing_value(self):
        target = {"role_id": None}
        assert not Specification("role_id", "==", "Manager").is_satisfied_by(target)
        assert Specification("role_id", "!=", "Manager").is_satisfied_by(target)
        assert not Specification("role_id", ">", 1).is_satisfied_by(target)

    def test_nan_is_never_equal_and_never_ordered(self):
        target = {"score": math.nan}
        assert not Specification("score", "==", 1.5).is_satisfied_by(target)
        assert Specification("score", "!=", 1.5).is_satisfied_by(target)
        with pytest.raises(OperatorTypeError):
            Specification("score", ">", 10).is_satisfied_by(target)
        with pytest.raises(OperatorTypeError):
            Specification("score", "<=", 10).is_satisfied_by({"score": Decimal("NaN")})

    def test_unknown_operator(self):
        with pytest.raises(ValueError, match="Unsupported operator"):
            Specification("age", "=~", 1)

    def test_same_specification_on_both_representations(self):
        """One compiled specification evaluates models and plain objects alike."""
        spec = Specification("role_id", "==", "Manager")
        assert spec.is_satisfied_by(Employee(name="a", age=40, role_id="Manager"))
        assert spec.is_satisfied_by(SimpleNamespace(role_id="Manager"))
        assert spec.is_satisfied_by({"roleId": "Manager"})


class TestCompoundSpecification:
    """Test AND/OR composition."""

    TARGET = {"is_admin": False, "role_id": "Owner", "age": 30}

    def _specs(self, *results):
        return [Specification("age", "==" if r else "!=", 30) for r in results]

    @pytest.mark.parametrize(
        "results", [(True,), (False,), (True, True), (True, False), (False, True), (False, False, True)]
    )
    def test_and_or_truth_tables(self, results):
        specs = self._specs(*results)
        assert CompoundSpecification("AND", specs).is_satisfied_by(self.TARGET) is all(results)
        assert CompoundSpecification("OR", specs).is_satisfied_by(self.TARGET) is any(results)

    @pytest.mark.parametrize("logic", ["AND", "OR"])
    def test_empty_is_a_construction_error(self, logic):
        with pytest.raises(ValueError, match="at least one"):
            CompoundSpecification(logic, [])

    def test_unknown_logic(self):
        with pytest.raises(ValueError, match="Unsupported logic"):
            CompoundSpecification("XOR", self._specs(True))

    def test_short_circuit(self):
        """OR stops at the first satisfied child; later errors never surface."""
        specs = [Specification("age", "==", 30), Specification("missing", "==", 1)]
        assert CompoundSpecification("OR", specs).is_satisfied_by(self.TARGET)
        with pytest.raises(FieldResolutionError):
            CompoundSpecification("AND", specs).is_satisfied_by(self.TARGET)

    def test_admin_or_owner(self):
        compound = CompoundSpecification(
            "OR",
            [Specification("is_admin", "==", True), Specification("role_id", "==", "Owner")],
        )
        assert compound.is_satisfied_by(self.TARGET)

    def test_immutable(self):
        compound = CompoundSpecification("AND", self._specs(True))
        with pytest.raises(AttributeError):
            compound.logic = "OR"


# =============================================================================
# Metadata context
# =============================================================================


class TestMetadataContext:
    """Test the request-scoped metadata context."""

    def test_with_category_returns_new_context(self):
        empty = MetadataContext()
        context = empty.with_category("sso", SsoContext(True))
        assert "sso" not in empty
        assert context["sso"].authenticated is True
        assert len(context) == 1

    def test_from_headers(self, catalog: MetadataCatalog):
        headers = {
            "x-sso-authenticated": "true",
            "X-Sso-Session-Id": "abc",
            "X-Roles-Role-Level": "3",
            "X-Oauth-Access-Token": "ignored",
        }
        context = MetadataContext.from_headers(headers, catalog)
        assert dict(context) == {
            "sso": {"authenticated": True, "sessionId": "abc"},
            "roles": {"roleLevel": 3},
        }

    def test_from_headers_drops_bad_values(self, catalog: MetadataCatalog):
        context = MetadataContext.from_headers({"X-Roles-Role-Level": "high"}, catalog)
        assert "roles" not in context


# =============================================================================
# Rules
# =============================================================================


def _age_rule() -> Rule:
    return Rule(
        name="AgeCheck",
        specification=Specification("age", ">=", 18),
        success_status="ADULT",
        failure_status="MINOR",
        target="employees",
    )


def _manager_rule(blocking: bool = True) -> Rule:
    return Rule(
        name="ManagerAccess",
        specification=Specification("role_id", "==", "Manager"),
        success_status="APPROVED",
        failure_status="DENIED",
        metadata_requirements={"sso": [Specification("authenticated", "==", True)]},
        blocking=blocking,
        target="employees",
    )


class TestRule:
    """Test the fail-closed rule state machine."""

    def test_adult_and_minor(self):
        rule = _age_rule()
        assert rule.evaluate(Employee(name="a", age=17)) == "MINOR"
        assert rule.evaluate(Employee(name="a", age=18)) == "ADULT"

    def test_no_metadata_fails_closed(self):
        manager = Employee(name="a", age=40, role_id="Manager")
        outcome = _manager_rule().outcome(manager, None)
        assert outcome.status == "DENIED"
        assert outcome.phase == "gate"
        assert outcome.failed_category is None

    def test_missing_category_fails_closed(self):
        manager = Employee(name="a", age=40, role_id="Manager")
        metadata = MetadataContext({"roles": {"roleLevel": 5}})
        outcome = _manager_rule().outcome(manager, metadata)
        assert outcome.status == "DENIED"
        assert outcome.failed_category == "sso"

    def test_failed_gate_skips_conditions(self):
        """Gates are evaluated before conditions: a bad target is never read."""
        metadata = MetadataContext({"sso": SsoContext(False)})
        outcome = _manager_rule().outcome(object(), metadata)
        assert outcome.status == "DENIED"
        assert outcome.phase == "gate"

    def test_passing_gate(self):
        metadata = MetadataContext({"sso": SsoContext(True)})
        manager = Employee(name="a", age=40, role_id="Manager")
        clerk = Employee(name="b", age=40, role_id="Clerk")
        assert _manager_rule().evaluate(manager, metadata) == "APPROVED"
        assert _manager_rule().evaluate(clerk, metadata) == "DENIED"

    def test_from_ir(self):
        rule_ir = RuleIR(
            name="AdminOrOwner",
            target=Target(name="employees"),
            conditions=CompoundExpression(
                operator="OR",
                clauses=(
                    Condition(field="is_admin", operator="==", value=True),
                    Condition(field="role_id", operator="==", value="Owner"),
                ),
            ),
            on_success="PRIVILEGED",
            on_failure="REGULAR",
        )
        rule = Rule.from_ir(rule_ir)
        assert rule.target == "employees"
        assert rule.evaluate({"is_admin": False, "role_id": "Owner"}) == "PRIVILEGED"
        assert rule.evaluate({"is_admin": False, "role_id": "Clerk"}) == "REGULAR"

    def test_flat_conditions_are_and(self):
        rule_ir = RuleIR(
            name="Both",
            target=Target(name="employees"),
            conditions=(
                Condition(field="age", operator=">=", value=18),
                Condition(field="role_id", operator="==", value="Manager"),
            ),
            on_success="OK",
            on_failure="NO",
        )
        rule = Rule.from_ir(rule_ir)
        assert rule.evaluate({"age": 30, "role_id": "Manager"}) == "OK"
        assert rule.evaluate({"age": 30, "role_id": "Clerk"}) == "NO"


# =============================================================================
# Engine
# =============================================================================


class TestRuleEngine:
    """Test rule-set evaluation and error isolation."""

    def test_status_and_blocking(self):
        rules = [_age_rule(), _manager_rule()]
        manager = Employee(name="a", age=40, role_id="Manager")
        assert evaluate_rules(rules, manager, None) == ("DENIED", True)

        metadata = MetadataContext({"sso": SsoContext(True)})
        assert evaluate_rules(rules, manager, metadata) == ("APPROVED", False)

    def test_non_blocking_failures_do_not_block(self):
        rules = [_manager_rule(blocking=False), _age_rule()]
        status, blocking = evaluate_rules(rules, Employee(name="a", age=12), None)
        assert (status, blocking) == ("MINOR", False)

    def test_errors_are_isolated(self):
        broken = Rule(
            name="Broken",
            specification=Specification("role_id", ">", 1),
            success_status="OK",
            failure_status="BROKEN",
            blocking=True,
            target="employees",
        )
        engine = RuleEngine([broken, _age_rule()])
        result = engine.evaluate("Employees", {"role_id": "Manager", "age": 20})
        assert result.outcome("AgeCheck").status == "ADULT"
        assert result.outcome("Broken").phase == "error"
        assert "not defined" in result.outcome("Broken").error
        assert result.blocking_failures is True
        assert result.status == "BROKEN"
        assert len(result.errors) == 1

    def test_nan_value_does_not_abort_siblings(self):
        score = Rule(
            name="Score",
            specification=Specification("score", ">", 10),
            success_status="HIGH",
            failure_status="LOW",
            target="employees",
        )
        engine = RuleEngine([score, _manager_rule()])
        result = engine.evaluate("employees", {"score": math.nan, "role_id": "Manager"})
        assert result.outcome("Score").phase == "error"
        assert result.outcome("ManagerAccess").status == "DENIED"
        assert result.as_tuple() == ("DENIED", True)

    def test_unknown_target(self):
        result = RuleEngine([_age_rule()]).evaluate("departments", {})
        assert result.outcomes == ()
        assert result.as_tuple() == (None, False)

    def test_from_compiled_rules(self, rule_compiler, employee_feature):
        engine = RuleEngine.from_rule_ir(rule_compiler.compile_texts([employee_feature]))
        assert engine.targets == ["employees"]

        owner = Employee(name="o", age=17, role_id="Owner")
        result = engine.evaluate("employees", owner)
        assert result.outcome("AgeCheck").status == "MINOR"
        assert result.outcome("ManagerAccess").status == "DENIED"
        assert result.outcome("AdminOrOwner").status == "PRIVILEGED"
        assert result.blocking_failures is True
        assert result.status == "DENIED"

    def test_load_from_yaml(self, tmp_path, rule_compiler, employee_feature):
        path = tmp_path / "specs.yaml"
        rule_compiler.compile_texts([employee_feature]).write(path)
        engine = RuleEngine.load(path)
        assert len(engine.rules_for("employees")) == 3
        assert RuleSetIR.load(path).rules[0].name == "AgeCheck"

    def test_entity_name_target_is_gated(self, rule_compiler):
        feature = """
@domain:appget
Feature: Entity named targets

  @target:Employee @rule:ManagerAccess @blocking
  Scenario: Managers need an SSO session
    Given sso context requires:
      | field         | operator | value |
      | authenticated | ==       | true  |
    When role_id equals "Manager"
    Then status is "APPROVED"
    But otherwise status is "DENIED"
"""
        rule_ir = rule_compiler.compile_texts([feature])
        assert rule_ir.rules[0].target.name == "employees"

        engine = RuleEngine.from_rule_ir(rule_ir)
        result = engine.evaluate("employees", Employee(name="m", age=40, role_id="Manager"))
        assert result.as_tuple() == ("DENIED", True)

    def test_lookup_resolves_entity_names(self, entity_ir):
        engine = RuleEngine([_manager_rule()], entity_ir)
        for name in ("employees", "Employee", "employee"):
            assert [r.name for r in engine.rules_for(name)] == ["ManagerAccess"], name

    def test_rules_are_keyed_by_domain(self):
        def rule(name: str, domain: str) -> Rule:
            return Rule(
                name=name,
                specification=Specification("age", ">=", 18),
                success_status="OK",
                failure_status="NO",
                target="employees",
                domain=domain,
            )

        engine = RuleEngine([rule("AppgetAge", "appget"), rule("HrAge", "hr"), _age_rule()])
        assert [r.name for r in engine.rules_for("employees", "hr")] == ["HrAge", "AgeCheck"]
        assert [r.name for r in engine.rules_for("employees", "appget")] == ["AppgetAge", "AgeCheck"]
        with pytest.raises(ValueError, match="appget, hr"):
            engine.rules_for("employees")
