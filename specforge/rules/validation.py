"""
Cross-validation of compiled rules against the metadata catalog and Entity IR.

Every problem in a pass is collected so a single run reports them all.
"""

from __future__ import annotations

import logging
from typing import Iterable

from specforge.core.errors import RuleValidationError
from specforge.core.naming import camel_to_snake
from specforge.core.types import NeutralType
from specforge.schema.ir import EntityIR
from .catalog import MetadataCatalog
from .ir import ORDERING_OPERATORS, Condition, Rule

logger = logging.getLogger(__name__)


class RuleValidator:
    """Validates rules against known metadata categories and entities.

    Args:
        catalog: Metadata categories available to gates
        entity_ir: Optional Entity IR; when given, targets and condition
            fields are checked too
    """

    def __init__(self, catalog: MetadataCatalog, entity_ir: EntityIR | None = None):
        self.catalog = catalog
        self.entity_ir = entity_ir

    def validate(self, rules: Iterable[Rule]) -> list[str]:
        """Return every problem found (empty when valid)."""
        problems: list[str] = []
        for rule in rules:
            problems.extend(self._check_requires(rule))
            if self.entity_ir is not None:
                problems.extend(self._check_target(rule))
        return problems

    def check(self, rules: Iterable[Rule]) -> None:
        """
        Raises:
            RuleValidationError: Carrying all problems, if any
        """
        problems = self.validate(rules)
        if problems:
            logger.error("Rule validation found %d problem(s)", len(problems))
            raise RuleValidationError(problems)

    def _check_requires(self, rule: Rule) -> list[str]:
        problems = []
        for category_name, conditions in rule.requires.items():
            category = self.catalog.get(category_name)
            if category is None:
                problems.append(
                    f"Rule '{rule.name}': metadata category '{category_name}' does not exist"
                )
                continue
            if not category.enabled:
                problems.append(
                    f"Rule '{rule.name}': metadata category '{category_name}' is disabled; "
                    f"set 'enabled: true' for '{category_name}' in metadata.yaml"
                )
                continue
            for condition in conditions:
                meta_field = category.field(condition.field)
                if meta_field is None:
                    problems.append(
                        f"Rule '{rule.name}': field '{condition.field}' "
                        f"not found in metadata category '{category_name}'"
                    )
                    continue
                problem = _ordering_problem(rule, condition, meta_field.type)
                if problem:
                    problems.append(problem)
        return problems

    def _check_target(self, rule: Rule) -> list[str]:
        target = rule.target
        domain = target.domain
        if domain is not None and domain not in self.entity_ir.domains:
            return [f"Rule '{rule.name}': domain '{domain}' does not exist"]

        entity = self.entity_ir.find_entity(target.name, domain, target.kind)
        if entity is None:
            where = f" in domain '{domain}'" if domain else ""
            return [f"Rule '{rule.name}': target {target.kind} '{target.name}' does not exist{where}"]

        problems = []
        for condition in rule.iter_conditions():
            entity_field = entity.field(condition.field) or entity.field(camel_to_snake(condition.field))
            if entity_field is None:
                problems.append(
                    f"Rule '{rule.name}': field '{condition.field}' "
                    f"not found on {target.kind} '{entity.name}'"
                )
                continue
            problem = _ordering_problem(rule, condition, entity_field.type)
            if problem:
                problems.append(problem)
        return problems


def _ordering_problem(rule: Rule, condition: Condition, field_type: NeutralType) -> str | None:
    if condition.operator in ORDERING_OPERATORS and not field_type.is_numeric:
        return (
            f"Rule '{rule.name}': operator '{condition.operator}' needs a numeric field, "
            f"'{condition.field}' is {field_type.value}"
        )
    return None
