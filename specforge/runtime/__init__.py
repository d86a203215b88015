"""Runtime package - Specification evaluation of compiled rules."""

from .accessors import (
    DescriptorFieldAccessor,
    FieldAccessor,
    ReflectionFieldAccessor,
    accessor_for,
)
from .context import MetadataContext
from .engine import EvaluationResult, RuleEngine, evaluate_rules
from .rule import Rule, RuleOutcome
from .specification import OPERATORS, CompoundSpecification, Specification, build_predicate

__all__ = [
    # Access
    "FieldAccessor",
    "DescriptorFieldAccessor",
    "ReflectionFieldAccessor",
    "accessor_for",
    # Specifications
    "OPERATORS",
    "Specification",
    "CompoundSpecification",
    "build_predicate",
    # Rules
    "MetadataContext",
    "Rule",
    "RuleOutcome",
    "RuleEngine",
    "EvaluationResult",
    "evaluate_rules",
]
