"""
Rule engine: evaluates every rule for a target and aggregates the result.

Per-rule evaluation errors are isolated: they are recorded on that rule's
outcome and never stop sibling rules. A blocking rule that errors counts as
a blocking failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from specforge.core.errors import EvaluationError
from specforge.rules.ir import RuleSetIR
from specforge.schema.ir import EntityIR
from .context import MetadataContext
from .rule import Rule, RuleOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationResult:
    """Outcomes of all rules for one target instance."""

    target: str | None
    outcomes: tuple[RuleOutcome, ...]

    @property
    def blocking_failures(self) -> bool:
        return any(o.blocking_failure for o in self.outcomes)

    @property
    def status(self) -> str | None:
        """First blocking failure's status, else the last rule's status."""
        for outcome in self.outcomes:
            if outcome.blocking_failure:
                return outcome.status
        return self.outcomes[-1].status if self.outcomes else None

    @property
    def errors(self) -> list[RuleOutcome]:
        return [o for o in self.outcomes if o.phase == "error"]

    def outcome(self, rule_name: str) -> RuleOutcome | None:
        for o in self.outcomes:
            if o.rule == rule_name:
                return o
        return None

    def as_tuple(self) -> tuple[str | None, bool]:
        return self.status, self.blocking_failures


def _evaluate_isolated(rule: Rule, instance: Any, metadata: MetadataContext | None) -> RuleOutcome:
    try:
        return rule.outcome(instance, metadata)
    except EvaluationError as exc:
        logger.warning("Rule %s failed to evaluate: %s", rule.name, exc)
        return RuleOutcome(
            rule=rule.name,
            satisfied=False,
            status=rule.failure_status,
            blocking=rule.blocking,
            phase="error",
            error=str(exc),
        )


def evaluate_rules(
    rules: Iterable[Rule],
    instance: Any,
    metadata: MetadataContext | None = None,
) -> tuple[str | None, bool]:
    """Evaluate a rule set for one target: ``(status, blocking_failures)``."""
    outcomes = tuple(_evaluate_isolated(rule, instance, metadata) for rule in rules)
    return EvaluationResult(target=None, outcomes=outcomes).as_tuple()


class RuleEngine:
    """Holds runtime rules keyed by target domain and name.

    With an Entity IR, every name the IR knows for an entity (entity name,
    source name, resource slug) resolves to the entity's source name, both
    when rules are registered and when a target is looked up.

    Usage:
        engine = RuleEngine.from_rule_ir(RuleSetIR.load("specs.yaml"), entity_ir)
        result = engine.evaluate("employees", employee, metadata)
        if result.blocking_failures:
            reject(result.status)
    """

    def __init__(self, rules: Iterable[Rule] = (), entity_ir: EntityIR | None = None):
        self.entity_ir = entity_ir
        self._rules: list[tuple[str | None, str, Rule]] = [
            (rule.domain, self._canonical(rule.target or "", rule.domain), rule) for rule in rules
        ]

    @classmethod
    def from_rule_ir(cls, rule_ir: RuleSetIR, entity_ir: EntityIR | None = None) -> "RuleEngine":
        engine = cls((Rule.from_ir(r) for r in rule_ir.rules), entity_ir)
        logger.info("Loaded %d rule(s) for %d target(s)", len(rule_ir.rules), len(engine.targets))
        return engine

    @classmethod
    def load(cls, path: str | Path, entity_ir: EntityIR | None = None) -> "RuleEngine":
        return cls.from_rule_ir(RuleSetIR.load(path), entity_ir)

    @property
    def targets(self) -> list[str]:
        return sorted({name for _, name, _ in self._rules})

    def _canonical(self, target: str, domain: str | None) -> str:
        if self.entity_ir is not None:
            entity = self.entity_ir.find_entity(target, domain)
            if entity is not None:
                return entity.source
        return target.lower()

    def rules_for(self, target: str, domain: str | None = None) -> list[Rule]:
        """
        Rules registered for a target, in declaration order.

        Rules without a domain match any domain.

        Raises:
            ValueError: If ``domain`` is omitted and the target has rules in
                more than one domain
        """
        name = self._canonical(target, domain)
        matched = [
            (rule_domain, rule)
            for rule_domain, rule_target, rule in self._rules
            if rule_target == name and (domain is None or rule_domain in (domain, None))
        ]
        if domain is None:
            domains = sorted({d for d, _ in matched if d is not None})
            if len(domains) > 1:
                raise ValueError(
                    f"Target '{target}' has rules in domains {', '.join(domains)}; pass a domain"
                )
        return [rule for _, rule in matched]

    def evaluate(
        self,
        target: str,
        instance: Any,
        metadata: MetadataContext | None = None,
        domain: str | None = None,
    ) -> EvaluationResult:
        """Evaluate every rule registered for ``target`` in declaration order."""
        rules = self.rules_for(target, domain)
        if not rules:
            logger.debug("No rules registered for target %s", target)
        outcomes = tuple(_evaluate_isolated(rule, instance, metadata) for rule in rules)
        result = EvaluationResult(target=target, outcomes=outcomes)
        logger.debug(
            "Evaluated %d rule(s) for %s: status=%s blocking_failures=%s",
            len(outcomes),
            target,
            result.status,
            result.blocking_failures,
        )
        return result
