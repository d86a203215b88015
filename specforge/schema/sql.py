"""
Lexical helpers and CREATE TABLE parsing.

Parsing is deliberately regex-and-scanner based rather than a full SQL
grammar: it understands enough of the common dialects (MySQL, PostgreSQL,
SQLite, Oracle, MSSQL) to extract column names, types, nullability, primary
keys and decimal precision.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from specforge.core.errors import SchemaParseError
from specforge.core.types import NeutralType, sql_to_neutral

logger = logging.getLogger(__name__)

_OPENERS = "(["
_CLOSERS = ")]"

# Tokens that end the type expression of a column definition
TYPE_STOP_WORDS = frozenset({
    "NOT",
    "NULL",
    "DEFAULT",
    "PRIMARY",
    "UNIQUE",
    "CHECK",
    "REFERENCES",
    "CONSTRAINT",
    "AUTO_INCREMENT",
    "AUTOINCREMENT",
    "IDENTITY",
    "COLLATE",
    "GENERATED",
})

_CONSTRAINT_STARTS = frozenset({
    "CONSTRAINT", "CHECK", "INDEX", "KEY", "EXCLUDE", "FULLTEXT", "SPATIAL", "UNIQUE",
})

DECIMAL_PRECISION = re.compile(
    r"(?:DECIMAL|NUMERIC|NUMBER)\s*\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)", re.IGNORECASE
)
_TABLE_PRIMARY_KEY = re.compile(r"PRIMARY\s+KEY\s*\(([^)]*)\)", re.IGNORECASE)
_CREATE_TABLE = re.compile(
    r"\bCREATE\s+(?:(?:GLOBAL\s+|LOCAL\s+)?(?:TEMPORARY|TEMP)\s+)?TABLE\s+"
    r"(?:IF\s+NOT\s+EXISTS\s+)?([^\s(]+)\s*\(",
    re.IGNORECASE,
)
_DOMAIN_HINT = re.compile(r"^[ \t]*--[ \t]*([A-Za-z_]\w*)[ \t]+domain\b", re.IGNORECASE | re.MULTILINE)
_BASE_TYPE = re.compile(r"[A-Za-z_][\w]*")


# =============================================================================
# Lexical helpers
# =============================================================================


def blank_comments(sql: str) -> str:
    """Replace ``--`` and ``/* */`` comments with spaces, preserving offsets.

    Quoted string literals are left untouched so their contents never start
    a comment.
    """
    out = list(sql)
    i = 0
    n = len(sql)
    while i < n:
        ch = sql[i]
        if ch == "'":
            i += 1
            while i < n:
                if sql[i] == "'" and i + 1 < n and sql[i + 1] == "'":
                    i += 2
                    continue
                if sql[i] == "'":
                    break
                i += 1
            i += 1
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            end = n if end < 0 else end
            for j in range(i, end):
                out[j] = " "
            i = end
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = n if end < 0 else end + 2
            for j in range(i, end):
                if out[j] != "\n":
                    out[j] = " "
            i = end
        else:
            i += 1
    return "".join(out)


def _skip_string(text: str, i: int) -> int:
    """Return the index just past the single-quoted literal starting at ``i``."""
    n = len(text)
    i += 1
    while i < n:
        if text[i] == "'":
            if i + 1 < n and text[i + 1] == "'":
                i += 2
                continue
            return i + 1
        i += 1
    return n


def find_matching_paren(text: str, open_index: int) -> int:
    """Index of the ``)`` closing the ``(`` at ``open_index``.

    Raises:
        SchemaParseError: If the parenthesis is never closed
    """
    depth = 0
    i = open_index
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "'":
            i = _skip_string(text, i)
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    line = text.count("\n", 0, open_index) + 1
    raise SchemaParseError(f"Unmatched '(' at line {line}")


def check_balanced(text: str, what: str) -> None:
    """Raise if ``text`` has unbalanced parentheses or brackets."""
    depth = 0
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "'":
            i = _skip_string(text, i)
            continue
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
            if depth < 0:
                raise SchemaParseError(f"Unmatched ')' in {what}")
        i += 1
    if depth != 0:
        raise SchemaParseError(f"Unmatched '(' in {what}")


def split_top_level(text: str, delimiter: str = ",") -> list[str]:
    """Split on ``delimiter`` outside parentheses, brackets and string literals.

    ``"a DECIMAL(15, 2), b INT"`` -> ``["a DECIMAL(15, 2)", "b INT"]``.
    Empty parts are dropped.
    """
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "'":
            end = _skip_string(text, i)
            current.append(text[i:end])
            i = end
            continue
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
        if ch == delimiter and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    parts.append("".join(current).strip())
    return [p for p in parts if p]


def tokenize(text: str) -> list[str]:
    """Whitespace tokens, keeping parenthesised groups intact.

    ``"amount DECIMAL(15, 2) NOT NULL"`` -> ``["amount", "DECIMAL(15, 2)", "NOT", "NULL"]``
    """
    tokens: list[str] = []
    current: list[str] = []
    depth = 0
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "'":
            end = _skip_string(text, i)
            current.append(text[i:end])
            i = end
            continue
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
        if ch.isspace() and depth == 0:
            if current:
                tokens.append("".join(current))
                current = []
        else:
            current.append(ch)
        i += 1
    if current:
        tokens.append("".join(current))
    return tokens


def normalize_identifier(raw: str) -> str:
    """Strip quoting and schema qualification: ``"public"."Users"`` -> ``users``."""
    name = raw.strip().rstrip(";")
    name = name.split(".")[-1]
    return name.strip('`"[]').lower()


def _word(token: str) -> str:
    """Leading keyword of a token, upper-cased: ``UNIQUE(a)`` -> ``UNIQUE``."""
    match = _BASE_TYPE.match(token)
    return match.group(0).upper() if match else ""


def domain_hints(sql: str) -> list[tuple[int, str]]:
    """Offsets of ``-- <name> domain`` section comments, in source order."""
    return [(m.start(), m.group(1).lower()) for m in _DOMAIN_HINT.finditer(sql)]


def hint_at(hints: list[tuple[int, str]], offset: int) -> str | None:
    """Domain named by the last section comment before ``offset``."""
    current = None
    for position, name in hints:
        if position > offset:
            break
        current = name
    return current


# =============================================================================
# Column and table definitions
# =============================================================================


@dataclass(frozen=True)
class ColumnDef:
    """A parsed column, before field-number assignment."""

    name: str
    type: NeutralType
    nullable: bool = True
    primary_key: bool = False
    precision: int | None = None
    scale: int | None = None
    sql_type: str = ""


@dataclass
class TableDef:
    """A parsed CREATE TABLE statement."""

    name: str
    columns: list[ColumnDef] = field(default_factory=list)
    primary_key: list[str] = field(default_factory=list)
    domain_hint: str | None = None

    def column(self, name: str) -> ColumnDef | None:
        lowered = name.lower()
        for col in self.columns:
            if col.name == lowered:
                return col
        return None


def is_constraint_line(line: str) -> bool:
    """Whether a column-block entry is a table constraint rather than a column."""
    tokens = tokenize(line)
    if not tokens:
        return False
    first = _word(tokens[0])
    second = _word(tokens[1]) if len(tokens) > 1 else ""
    if first in ("PRIMARY", "FOREIGN") and second == "KEY":
        return True
    return first in _CONSTRAINT_STARTS


def parse_column(line: str) -> ColumnDef | None:
    """Classify one column definition token by token.

    The first token is the column name; tokens up to a stop word form the
    type expression; ``NOT NULL`` marks the column non-nullable and an
    inline ``PRIMARY KEY`` flags it as a key.

    Returns:
        The column, or None when the line has no type expression
    """
    tokens = tokenize(line)
    if len(tokens) < 2:
        return None

    name = normalize_identifier(tokens[0])
    type_tokens: list[str] = []
    type_end = len(tokens)
    for i, token in enumerate(tokens[1:], start=1):
        if _word(token) in TYPE_STOP_WORDS:
            type_end = i
            break
        type_tokens.append(token)

    if not type_tokens:
        return None

    type_expr = " ".join(type_tokens)
    base = _word(type_expr)
    neutral = sql_to_neutral(base)

    modifiers = [t.upper() for t in tokens[type_end:]]
    nullable = True
    primary_key = False
    for i in range(len(modifiers) - 1):
        if modifiers[i] == "NOT" and modifiers[i + 1] == "NULL":
            nullable = False
        if modifiers[i] == "PRIMARY" and modifiers[i + 1] == "KEY":
            primary_key = True
    if primary_key:
        nullable = False

    precision = scale = None
    if neutral is NeutralType.DECIMAL:
        match = DECIMAL_PRECISION.search(type_expr)
        if match:
            precision = int(match.group(1))
            scale = int(match.group(2)) if match.group(2) is not None else 0

    return ColumnDef(
        name=name,
        type=neutral,
        nullable=nullable,
        primary_key=primary_key,
        precision=precision,
        scale=scale,
        sql_type=type_expr,
    )


def parse_table_body(name: str, body: str) -> TableDef:
    """Parse the text between a CREATE TABLE statement's outer parentheses."""
    table = TableDef(name=name)
    table_level_keys: list[str] = []
    inline_keys: list[str] = []

    for line in split_top_level(body, ","):
        if is_constraint_line(line):
            match = _TABLE_PRIMARY_KEY.search(line)
            if match:
                for key in match.group(1).split(","):
                    key = normalize_identifier(key)
                    if key and key not in table_level_keys:
                        table_level_keys.append(key)
            continue

        column = parse_column(line)
        if column is None:
            logger.warning("Skipping unparseable column definition in %s: %r", name, line)
            continue
        if table.column(column.name) is not None:
            raise SchemaParseError(f"Duplicate column '{column.name}' in table {name}")
        table.columns.append(column)
        if column.primary_key:
            inline_keys.append(column.name)

    merged = table_level_keys + [k for k in inline_keys if k not in table_level_keys]
    for key in merged:
        if table.column(key) is None:
            raise SchemaParseError(f"Primary key column '{key}' not declared in table {name}")
    table.primary_key = merged

    # Table-level keys are non-nullable too
    table.columns = [
        ColumnDef(
            name=c.name,
            type=c.type,
            nullable=False if c.name in merged else c.nullable,
            primary_key=c.name in merged,
            precision=c.precision,
            scale=c.scale,
            sql_type=c.sql_type,
        )
        for c in table.columns
    ]
    return table


def _statement_end(text: str, start: int) -> int:
    """Index of the next top-level ';' at or after ``start``, or the end of text."""
    i = start
    n = len(text)
    while i < n:
        if text[i] == "'":
            i = _skip_string(text, i)
            continue
        if text[i] == ";":
            return i
        i += 1
    return n


def parse_tables(sql: str) -> list[TableDef]:
    """Parse every CREATE TABLE statement in a script, in source order.

    Raises:
        SchemaParseError: On an unmatched parenthesis, including a stray ')'
            that closes the column list early
    """
    hints = domain_hints(sql)
    text = blank_comments(sql)
    tables: list[TableDef] = []

    for match in _CREATE_TABLE.finditer(text):
        name = normalize_identifier(match.group(1))
        open_index = match.end() - 1
        close_index = find_matching_paren(text, open_index)
        tail = text[close_index + 1:_statement_end(text, close_index + 1)]
        check_balanced(tail, f"table {name}")
        if tail.lstrip().startswith(","):
            raise SchemaParseError(f"Unexpected content after the column list of table {name}")
        table = parse_table_body(name, text[open_index + 1:close_index])
        table.domain_hint = hint_at(hints, match.start())
        tables.append(table)
        logger.debug("Parsed table %s with %d column(s)", name, len(table.columns))

    logger.info("Parsed %d table(s)", len(tables))
    return tables
