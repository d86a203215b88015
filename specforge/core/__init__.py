"""Core package - Shared configuration, errors, logging, and neutral types."""

from .config import Settings, get_settings
from .errors import (
    CompileError,
    EvaluationError,
    FeatureParseError,
    FieldResolutionError,
    OperatorTypeError,
    RegistryInvariantError,
    RuleCompileError,
    RuleValidationError,
    SchemaParseError,
    SpecforgeError,
)
from .logging import configure_logging
from .types import NeutralType, sql_to_neutral, to_neutral

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "configure_logging",
    # Errors
    "SpecforgeError",
    "CompileError",
    "SchemaParseError",
    "RegistryInvariantError",
    "FeatureParseError",
    "RuleCompileError",
    "RuleValidationError",
    "EvaluationError",
    "FieldResolutionError",
    "OperatorTypeError",
    # Types
    "NeutralType",
    "sql_to_neutral",
    "to_neutral",
]
