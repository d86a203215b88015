"""
Rule compiler: scenario documents to Rule IR.

Compilation flow:
1. Tokenize each document into scenarios and steps
2. Read tags (@rule, @target, @domain, @blocking, @view)
3. Classify steps into metadata gates, conditions and outcome statuses
4. Validate the rule set against the metadata catalog (and Entity IR)
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

from specforge.core.config import Settings, get_settings
from specforge.core.errors import RuleCompileError
from specforge.schema.ir import EntityIR
from .catalog import MetadataCatalog
from .conditions import parse_condition_phrase, parse_condition_table
from .feature_parser import FeatureDocument, Scenario, Step, parse_feature, tag_value
from .ir import CompoundExpression, Condition, Rule, RuleSetIR, Target
from .validation import RuleValidator

logger = logging.getLogger(__name__)

METADATA_GATE = re.compile(r"^(\w+)\s+context\s+requires:?$")
STATUS = re.compile(r'^status\s+is\s+"([^"]+)"$')
OTHERWISE_STATUS = re.compile(r'^otherwise\s+status\s+is\s+"([^"]+)"$')

# Opening phrase of a tabular compound condition -> logic operator
COMPOUND_PHRASES = {
    "all conditions are met": "AND",
    "any condition is met": "OR",
}


class RuleCompiler:
    """Compiles scenario documents into a validated RuleSetIR.

    Usage:
        compiler = RuleCompiler(catalog, entity_ir=models)
        rule_ir = compiler.compile_directory("features")
    """

    def __init__(
        self,
        catalog: MetadataCatalog,
        entity_ir: EntityIR | None = None,
        settings: Settings | None = None,
    ):
        self.catalog = catalog
        self.entity_ir = entity_ir
        self.settings = settings or get_settings()

    def compile_documents(self, documents: Iterable[FeatureDocument]) -> RuleSetIR:
        """
        Compile documents in order into one rule set.

        Raises:
            RuleCompileError: On a malformed scenario or duplicate rule name
            RuleValidationError: On unknown/disabled categories, targets or fields
        """
        rules: list[Rule] = []
        seen: dict[str, str] = {}
        for document in documents:
            compiled = self.compile_document(document)
            for rule in compiled:
                if rule.name in seen:
                    raise RuleCompileError(
                        f"Duplicate rule name '{rule.name}' "
                        f"(in {document.source or 'document'} and {seen[rule.name]})"
                    )
                seen[rule.name] = document.source or "document"
            rules.extend(compiled)
            logger.info("Compiled %d rule(s) from %s", len(compiled), document.source or "document")

        RuleValidator(self.catalog, self.entity_ir).check(rules)
        if self.entity_ir is not None:
            rules = [self._canonical_target(rule) for rule in rules]
        return RuleSetIR(metadata=self.catalog.enabled(), rules=tuple(rules))

    def _canonical_target(self, rule: Rule) -> Rule:
        """Rewrite a validated target to its source table or view name.

        ``@target:Employee`` and ``@target:employees`` both end up as
        ``employees``, the name the runtime is asked to evaluate.
        """
        target = rule.target
        entity = self.entity_ir.find_entity(target.name, target.domain, target.kind)
        if entity is None or entity.source == target.name:
            return rule
        logger.debug("Rule %s: target %s resolved to %s", rule.name, target.name, entity.source)
        return rule.model_copy(update={"target": target.model_copy(update={"name": entity.source})})

    def compile_texts(self, texts: Iterable[str]) -> RuleSetIR:
        """Compile raw document texts (convenient for tests and tooling)."""
        return self.compile_documents(parse_feature(text) for text in texts)

    def compile_directory(self, features_dir: str | Path) -> RuleSetIR:
        """Compile every ``*.feature`` file in a directory, alphabetically."""
        features_dir = Path(features_dir)
        if not features_dir.is_dir():
            raise FileNotFoundError(f"Features directory not found: {features_dir}")

        paths = sorted(features_dir.glob("*.feature"))
        logger.info("Found %d feature file(s) in %s", len(paths), features_dir)
        documents = [
            parse_feature(path.read_text(encoding="utf-8"), source=path.name) for path in paths
        ]
        rule_ir = self.compile_documents(documents)
        logger.info("Compiled %d rule(s) in total", len(rule_ir.rules))
        return rule_ir

    def compile_document(self, document: FeatureDocument) -> list[Rule]:
        feature_domain = tag_value(document.tags, "domain")
        return [
            self.compile_scenario(scenario, feature_domain, document)
            for scenario in document.scenarios
        ]

    def compile_scenario(
        self,
        scenario: Scenario,
        feature_domain: str | None = None,
        document: FeatureDocument | None = None,
    ) -> Rule:
        """
        Compile one scenario into a rule.

        Args:
            scenario: Tokenized scenario
            feature_domain: Domain from the feature-level tag
            document: Owning document (for error locations)

        Returns:
            The compiled Rule
        """
        location = _location(scenario, document)
        name = scenario.tag_value("rule")
        if not name:
            raise RuleCompileError(f"{location}: scenario '{scenario.name}' has no @rule tag")
        target_name = scenario.tag_value("target")
        if not target_name:
            raise RuleCompileError(f"{location}: rule '{name}' has no @target tag")

        target = Target(
            kind="view" if scenario.has_tag("view") else "model",
            name=target_name,
            domain=scenario.tag_value("domain") or feature_domain or self.settings.default_domain,
        )

        builder = _RuleBuilder(name, location)
        for step in scenario.background + scenario.steps:
            builder.add(step)

        rule = builder.build(target, blocking=scenario.has_tag("blocking"))
        logger.debug("Compiled rule %s (target: %s, blocking: %s)", name, target.name, rule.blocking)
        return rule


class _RuleBuilder:
    """Accumulates step meanings for a single scenario."""

    def __init__(self, name: str, location: str):
        self.name = name
        self.location = location
        self.requires: dict[str, list[Condition]] = {}
        self.conditions: list[Condition] | CompoundExpression | None = None
        self.on_success: str | None = None
        self.on_failure: str | None = None
        self._previous: str | None = None

    def _error(self, step: Step, message: str) -> RuleCompileError:
        return RuleCompileError(f"{self.location}:{step.line}: rule '{self.name}': {message}")

    def add(self, step: Step) -> None:
        keyword = step.keyword
        gate = METADATA_GATE.match(step.text)

        if keyword in ("Given", "And", "*") and gate:
            if step.table is None:
                raise self._error(step, f"'{step.text}' needs a condition table")
            try:
                conditions = parse_condition_table(step.table)
            except RuleCompileError as exc:
                raise self._error(step, str(exc)) from exc
            self.requires.setdefault(gate.group(1), []).extend(conditions)
            self._previous = "Given"
            return

        if keyword in ("And", "*"):
            if self._previous is None:
                raise self._error(step, f"'{keyword}' step has nothing to continue")
            keyword = self._previous

        if keyword == "Given":
            logger.debug("Ignoring descriptive step in %s: Given %s", self.name, step.text)
        elif keyword == "When":
            self._add_condition(step)
        elif keyword == "Then":
            match = STATUS.match(step.text)
            if not match:
                raise self._error(step, f"expected 'status is \"...\"', got {step.text!r}")
            if self.on_success is not None:
                raise self._error(step, "success status declared twice")
            self.on_success = match.group(1)
        elif keyword == "But":
            match = OTHERWISE_STATUS.match(step.text)
            if not match:
                raise self._error(step, f"expected 'otherwise status is \"...\"', got {step.text!r}")
            if self.on_failure is not None:
                raise self._error(step, "failure status declared twice")
            self.on_failure = match.group(1)
        self._previous = keyword

    def _add_condition(self, step: Step) -> None:
        for phrase, logic in COMPOUND_PHRASES.items():
            if step.text.startswith(phrase):
                if step.table is None:
                    raise self._error(step, f"'{phrase}' needs a condition table")
                if self.conditions is not None:
                    raise self._error(step, "a compound condition must be the only condition")
                try:
                    clauses = parse_condition_table(step.table)
                except RuleCompileError as exc:
                    raise self._error(step, str(exc)) from exc
                if not clauses:
                    raise self._error(step, f"'{phrase}' table has no conditions")
                self.conditions = CompoundExpression(operator=logic, clauses=clauses)
                return

        if isinstance(self.conditions, CompoundExpression):
            raise self._error(step, "a compound condition must be the only condition")
        try:
            condition = parse_condition_phrase(step.text)
        except RuleCompileError as exc:
            raise self._error(step, str(exc)) from exc
        if self.conditions is None:
            self.conditions = []
        self.conditions.append(condition)

    def build(self, target: Target, blocking: bool) -> Rule:
        if self.conditions is None:
            raise RuleCompileError(f"{self.location}: rule '{self.name}' has no conditions")
        if self.on_success is None:
            raise RuleCompileError(f"{self.location}: rule '{self.name}' has no 'Then status is' step")
        if self.on_failure is None:
            raise RuleCompileError(
                f"{self.location}: rule '{self.name}' has no 'But otherwise status is' step"
            )
        conditions = (
            self.conditions
            if isinstance(self.conditions, CompoundExpression)
            else tuple(self.conditions)
        )
        return Rule(
            name=self.name,
            target=target,
            blocking=blocking,
            requires={category: tuple(items) for category, items in self.requires.items()},
            conditions=conditions,
            on_success=self.on_success,
            on_failure=self.on_failure,
        )


def _location(scenario: Scenario, document: FeatureDocument | None) -> str:
    source = document.source if document is not None and document.source else "<text>"
    return f"{source}:{scenario.line}"


# =============================================================================
# Convenience functions
# =============================================================================


def compile_directory(
    features_dir: str | Path,
    metadata_path: str | Path,
    entity_ir: EntityIR | None = None,
    settings: Settings | None = None,
) -> RuleSetIR:
    """Compile a directory of feature files against a metadata catalog file."""
    catalog = MetadataCatalog.load(metadata_path)
    return RuleCompiler(catalog, entity_ir, settings).compile_directory(features_dir)


def write_rule_ir(rule_ir: RuleSetIR, path: str | Path) -> None:
    """Write ``specs.yaml``."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    rule_ir.write(path)
    logger.info("Wrote %d rule(s) to %s", len(rule_ir.rules), path)
