"""Language-neutral field types shared by the entity and rule IRs."""

from __future__ import annotations

from enum import Enum


class NeutralType(str, Enum):
    """Field types independent of any target language."""

    STRING = "string"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT64 = "float64"
    BOOL = "bool"
    DATE = "date"
    DATETIME = "datetime"
    DECIMAL = "decimal"

    @property
    def is_numeric(self) -> bool:
        return self in (
            NeutralType.INT32,
            NeutralType.INT64,
            NeutralType.FLOAT64,
            NeutralType.DECIMAL,
        )


# SQL base type -> neutral type. Anything not listed maps to string.
SQL_TO_NEUTRAL: dict[str, NeutralType] = {
    "VARCHAR": NeutralType.STRING,
    "NVARCHAR": NeutralType.STRING,
    "VARCHAR2": NeutralType.STRING,
    "CHAR": NeutralType.STRING,
    "NCHAR": NeutralType.STRING,
    "TEXT": NeutralType.STRING,
    "CLOB": NeutralType.STRING,
    "UUID": NeutralType.STRING,
    "INT": NeutralType.INT32,
    "INTEGER": NeutralType.INT32,
    "SMALLINT": NeutralType.INT32,
    "TINYINT": NeutralType.INT32,
    "MEDIUMINT": NeutralType.INT32,
    "SERIAL": NeutralType.INT32,
    "BIGINT": NeutralType.INT64,
    "BIGSERIAL": NeutralType.INT64,
    "LONG": NeutralType.INT64,
    "DECIMAL": NeutralType.DECIMAL,
    "NUMERIC": NeutralType.DECIMAL,
    "NUMBER": NeutralType.DECIMAL,
    "MONEY": NeutralType.DECIMAL,
    "FLOAT": NeutralType.FLOAT64,
    "DOUBLE": NeutralType.FLOAT64,
    "REAL": NeutralType.FLOAT64,
    "DATE": NeutralType.DATE,
    "TIMESTAMP": NeutralType.DATETIME,
    "TIMESTAMPTZ": NeutralType.DATETIME,
    "DATETIME": NeutralType.DATETIME,
    "DATETIME2": NeutralType.DATETIME,
    "BOOLEAN": NeutralType.BOOL,
    "BOOL": NeutralType.BOOL,
    "BIT": NeutralType.BOOL,
}

# Legacy metadata type names accepted in metadata catalogs
LEGACY_TO_NEUTRAL: dict[str, NeutralType] = {
    "boolean": NeutralType.BOOL,
    "Boolean": NeutralType.BOOL,
    "int": NeutralType.INT32,
    "Integer": NeutralType.INT32,
    "long": NeutralType.INT64,
    "Long": NeutralType.INT64,
    "double": NeutralType.FLOAT64,
    "Double": NeutralType.FLOAT64,
    "float": NeutralType.FLOAT64,
    "Float": NeutralType.FLOAT64,
    "String": NeutralType.STRING,
    "str": NeutralType.STRING,
}


def sql_to_neutral(sql_type: str) -> NeutralType:
    """Map a SQL base type name (e.g. ``VARCHAR``) to its neutral type."""
    return SQL_TO_NEUTRAL.get(sql_type.upper(), NeutralType.STRING)


def to_neutral(type_name: str | None) -> NeutralType:
    """Normalise a metadata type name, legacy or neutral, to a neutral type."""
    if not type_name:
        return NeutralType.STRING
    if type_name in LEGACY_TO_NEUTRAL:
        return LEGACY_TO_NEUTRAL[type_name]
    try:
        return NeutralType(type_name)
    except ValueError:
        raise ValueError(f"Unknown field type '{type_name}'") from None
