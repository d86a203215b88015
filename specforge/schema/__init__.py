"""Schema package - SQL DDL to field-numbered Entity IR."""

from .compiler import SchemaCompiler, compile_files, compile_schema
from .ir import SCHEMA_VERSION, Domain, EntityIR, Field, Model, View
from .registry import FieldNumberRegistry
from .sql import find_matching_paren, parse_column, parse_tables, split_top_level
from .views import parse_aliases, parse_views

__all__ = [
    # Compiler
    "SchemaCompiler",
    "compile_schema",
    "compile_files",
    "FieldNumberRegistry",
    # IR
    "SCHEMA_VERSION",
    "EntityIR",
    "Domain",
    "Model",
    "View",
    "Field",
    # Parsing
    "split_top_level",
    "find_matching_paren",
    "parse_column",
    "parse_tables",
    "parse_views",
    "parse_aliases",
]
