"""
Error types for schema compilation, rule compilation, and evaluation.
"""

from __future__ import annotations


class SpecforgeError(Exception):
    """Base exception for all specforge errors."""


# =============================================================================
# Compile-time errors (fatal to the compilation pass)
# =============================================================================


class CompileError(SpecforgeError):
    """Raised when a compilation pass cannot produce an IR."""


class SchemaParseError(CompileError):
    """
    Raised when a table or view definition is structurally malformed.

    Examples:
    - Unmatched parenthesis in a column block
    - Primary key naming an undeclared column
    """


class RegistryInvariantError(CompileError):
    """Raised when two fields of one entity would share a field number."""


class FeatureParseError(CompileError):
    """Raised when a rule scenario document cannot be tokenized."""

    def __init__(self, message: str, source: str | None = None, line: int | None = None):
        self.source = source
        self.line = line
        location = ""
        if source is not None:
            location = f"{source}:{line}: " if line is not None else f"{source}: "
        elif line is not None:
            location = f"line {line}: "
        super().__init__(f"{location}{message}")


class RuleCompileError(CompileError):
    """
    Raised when a scenario cannot be turned into a rule.

    Examples:
    - Condition phrase with no recognised operator
    - Scenario missing its @rule or @target tag
    - Duplicate rule name across the rule set
    """


class RuleValidationError(CompileError):
    """Raised when compiled rules reference unknown categories, targets or fields."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        summary = "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(f"Rule validation failed with {len(self.problems)} problem(s):\n{summary}")


# =============================================================================
# Evaluation-time errors (per rule, never abort sibling rules)
# =============================================================================


class EvaluationError(SpecforgeError):
    """Raised when a specification cannot be evaluated against a target."""


class FieldResolutionError(EvaluationError):
    """Raised when a target does not expose the field a specification reads."""

    def __init__(self, field: str, target: object):
        self.field = field
        self.target_type = type(target).__name__
        super().__init__(f"Field '{field}' not found on {self.target_type}")


class OperatorTypeError(EvaluationError):
    """Raised when an operator is applied to values outside its domain."""

    def __init__(self, operator: str, actual: object, expected: object):
        self.operator = operator
        super().__init__(
            f"Operator '{operator}' is not defined for "
            f"{type(actual).__name__} and {type(expected).__name__}"
        )
