"""
Runtime rule: metadata gates, main predicate and outcome statuses.

Evaluation is fail-closed:
1. Gates present but no metadata context -> failure status
2. Any required category absent, or any of its gates unsatisfied -> failure
3. Only then is the main predicate evaluated against the target
4. The predicate result maps to the success or failure status
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Literal, Mapping, Sequence

from specforge.rules import ir
from .context import MetadataContext
from .specification import Predicate, Specification, build_predicate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleOutcome:
    """Result of evaluating one rule against one target."""

    rule: str
    satisfied: bool
    status: str
    blocking: bool = False
    phase: Literal["gate", "conditions", "error"] = "conditions"
    """Where evaluation stopped."""
    failed_category: str | None = None
    """Gate category that failed, when ``phase == "gate"``."""
    error: str | None = None
    """Evaluation error message, when ``phase == "error"``."""

    @property
    def blocking_failure(self) -> bool:
        return self.blocking and not self.satisfied


class Rule:
    """An executable rule built once and reused across evaluations.

    Args:
        name: Rule name
        specification: Main predicate
        success_status: Status when satisfied
        failure_status: Status otherwise
        metadata_requirements: Category -> gate specifications
        blocking: Whether failure should reject the enclosing operation
        target: Target entity name
        domain: Domain of the target entity
    """

    def __init__(
        self,
        name: str,
        specification: Predicate,
        success_status: str,
        failure_status: str,
        metadata_requirements: Mapping[str, Sequence[Specification]] | None = None,
        blocking: bool = False,
        target: str | None = None,
        domain: str | None = None,
    ):
        self.name = name
        self.specification = specification
        self.success_status = success_status
        self.failure_status = failure_status
        self.metadata_requirements = MappingProxyType(
            {category: tuple(specs) for category, specs in (metadata_requirements or {}).items()}
        )
        self.blocking = blocking
        self.target = target
        self.domain = domain

    def __repr__(self) -> str:
        return f"Rule({self.name!r}, target={self.target!r}, blocking={self.blocking})"

    @classmethod
    def from_ir(cls, rule: ir.Rule) -> "Rule":
        return cls(
            name=rule.name,
            specification=build_predicate(rule.conditions),
            success_status=rule.on_success,
            failure_status=rule.on_failure,
            metadata_requirements={
                category: [Specification.from_condition(c) for c in conditions]
                for category, conditions in rule.requires.items()
            },
            blocking=rule.blocking,
            target=rule.target.name,
            domain=rule.target.domain,
        )

    def evaluate(self, target: Any, metadata: MetadataContext | None = None) -> str:
        """Status string for ``target`` under ``metadata``."""
        return self.outcome(target, metadata).status

    def outcome(self, target: Any, metadata: MetadataContext | None = None) -> RuleOutcome:
        """
        Evaluate with full detail.

        Raises:
            EvaluationError: If a field cannot be resolved or an operator does
                not apply; callers that need isolation catch this per rule.
        """
        if self.metadata_requirements:
            if metadata is None:
                logger.debug("Rule %s: no metadata context, failing closed", self.name)
                return self._gate_failure(None)
            for category, gates in self.metadata_requirements.items():
                context = metadata.get(category)
                if context is None:
                    logger.debug("Rule %s: metadata category %s absent", self.name, category)
                    return self._gate_failure(category)
                for gate in gates:
                    if not gate.is_satisfied_by(context):
                        logger.debug("Rule %s: gate %s failed on %s", self.name, gate, category)
                        return self._gate_failure(category)

        satisfied = self.specification.is_satisfied_by(target)
        return RuleOutcome(
            rule=self.name,
            satisfied=satisfied,
            status=self.success_status if satisfied else self.failure_status,
            blocking=self.blocking,
        )

    def _gate_failure(self, category: str | None) -> RuleOutcome:
        return RuleOutcome(
            rule=self.name,
            satisfied=False,
            status=self.failure_status,
            blocking=self.blocking,
            phase="gate",
            failed_category=category,
        )
