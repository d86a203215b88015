"""Rules package - Scenario documents to validated Rule IR."""

from .catalog import MetadataCatalog
from .compiler import RuleCompiler, compile_directory, write_rule_ir
from .conditions import OPERATOR_PHRASES, coerce_value, parse_condition_phrase, resolve_operator
from .feature_parser import DataTable, FeatureDocument, Scenario, Step, parse_feature
from .ir import (
    SCHEMA_VERSION,
    CompoundExpression,
    Condition,
    MetadataCategory,
    MetadataField,
    Rule,
    RuleSetIR,
    Target,
    infer_value_type,
)
from .validation import RuleValidator

__all__ = [
    # Compiler
    "RuleCompiler",
    "RuleValidator",
    "compile_directory",
    "write_rule_ir",
    "MetadataCatalog",
    # Parsing
    "parse_feature",
    "FeatureDocument",
    "Scenario",
    "Step",
    "DataTable",
    "OPERATOR_PHRASES",
    "parse_condition_phrase",
    "resolve_operator",
    "coerce_value",
    # IR
    "SCHEMA_VERSION",
    "RuleSetIR",
    "Rule",
    "Target",
    "Condition",
    "CompoundExpression",
    "MetadataCategory",
    "MetadataField",
    "infer_value_type",
]
