"""
CREATE VIEW parsing and column type resolution.

A view's columns are typed by resolving each SELECT expression against the
tables (and earlier views) named in its FROM/JOIN clause.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from specforge.core.errors import SchemaParseError
from specforge.core.types import NeutralType, sql_to_neutral
from .sql import (
    ColumnDef,
    blank_comments,
    check_balanced,
    domain_hints,
    hint_at,
    normalize_identifier,
    split_top_level,
)

logger = logging.getLogger(__name__)

_CREATE_VIEW = re.compile(
    r"\bCREATE\s+(?:OR\s+REPLACE\s+)?(?:MATERIALIZED\s+)?VIEW\s+"
    r"(?:IF\s+NOT\s+EXISTS\s+)?([^\s(]+)\s+AS\s+",
    re.IGNORECASE,
)
_SELECT = re.compile(r"^\s*SELECT\s+(?:DISTINCT\s+|ALL\s+)?", re.IGNORECASE)
_JOIN = re.compile(
    r"\s+(?:(?:INNER|CROSS|NATURAL)\s+|(?:LEFT|RIGHT|FULL)(?:\s+OUTER)?\s+)?JOIN\s+",
    re.IGNORECASE,
)
_JOIN_PREDICATE = re.compile(r"\s+(?:ON|USING)\b.*$", re.IGNORECASE | re.DOTALL)
_AGGREGATE = re.compile(r"^(COUNT|SUM|AVG|MIN|MAX)\s*\((.*)\)$", re.IGNORECASE | re.DOTALL)
_CAST = re.compile(r"^CAST\s*\((.*)\s+AS\s+([A-Za-z_]\w*)(?:\s*\([^)]*\))?\s*\)$", re.IGNORECASE | re.DOTALL)
_ALIASED = re.compile(r"^(.+?)\s+AS\s+([\w\"`\[\]]+)$", re.IGNORECASE | re.DOTALL)
_IMPLICIT_ALIAS = re.compile(r"^([\w.\"`\[\]]+)\s+([A-Za-z_]\w*)$")
_QUALIFIED = re.compile(r"^([\w\"`\[\]]+)\.([\w\"`\[\]]+|\*)$")
_IDENTIFIER = re.compile(r"^[\w\"`\[\]]+$")
_INTEGER_LITERAL = re.compile(r"^-?\d+$")
_FLOAT_LITERAL = re.compile(r"^-?\d+\.\d+$")

# Clauses following FROM that never contribute sources
_TAIL_KEYWORDS = ("WHERE", "GROUP BY", "HAVING", "ORDER BY", "LIMIT", "UNION", "WINDOW")


@dataclass(frozen=True)
class SelectItem:
    expression: str
    output_name: str | None
    """None for ``*`` and ``alias.*`` items."""


@dataclass
class ViewDef:
    """A parsed CREATE VIEW statement, before type resolution."""

    name: str
    items: list[SelectItem] = field(default_factory=list)
    aliases: dict[str, str | None] = field(default_factory=dict)
    """Alias -> source table/view name (None for derived tables)."""
    domain_hint: str | None = None


@dataclass(frozen=True)
class ResolvedColumn:
    type: NeutralType
    nullable: bool
    precision: int | None = None
    scale: int | None = None
    resolved: bool = True


_UNRESOLVED = ResolvedColumn(NeutralType.STRING, True, resolved=False)


# =============================================================================
# Statement parsing
# =============================================================================


def _find_keyword(text: str, keyword: str) -> int:
    """Offset of ``keyword`` as a whole word at parenthesis depth 0, or -1."""
    pattern = re.compile(r"\b" + r"\s+".join(keyword.split()) + r"\b", re.IGNORECASE)
    for match in pattern.finditer(text):
        prefix = text[:match.start()]
        if prefix.count("(") == prefix.count(")") and prefix.count("'") % 2 == 0:
            return match.start()
    return -1


def _statement_end(text: str, start: int) -> int:
    depth = 0
    in_string = False
    for i in range(start, len(text)):
        ch = text[i]
        if ch == "'":
            in_string = not in_string
        elif in_string:
            continue
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == ";" and depth == 0:
            return i
    return len(text)


def parse_aliases(from_clause: str) -> dict[str, str | None]:
    """Map each alias in a FROM/JOIN clause to its source name.

    ``employees e JOIN salaries AS s ON e.name = s.employee_id``
    -> ``{"e": "employees", "s": "salaries"}``. A source without an alias
    is reachable by its own name.
    """
    aliases: dict[str, str | None] = {}
    for joined in _JOIN.split(from_clause):
        for part in split_top_level(joined, ","):
            part = _JOIN_PREDICATE.sub("", part).strip()
            if not part:
                continue
            if part.startswith("("):
                tail = part[part.rfind(")") + 1:].split()
                tail = [t for t in tail if t.upper() != "AS"]
                if tail:
                    aliases[normalize_identifier(tail[0])] = None
                continue
            tokens = [t for t in part.split() if t.upper() != "AS"]
            source = normalize_identifier(tokens[0])
            alias = normalize_identifier(tokens[1]) if len(tokens) > 1 else source
            aliases[alias] = source
    return aliases


def parse_select_item(item: str) -> SelectItem:
    """Split one SELECT list entry into its expression and output name."""
    item = item.strip()
    match = _ALIASED.match(item)
    if match:
        return SelectItem(match.group(1).strip(), normalize_identifier(match.group(2)))

    if item == "*" or item.endswith(".*"):
        return SelectItem(item, None)

    match = _IMPLICIT_ALIAS.match(item)
    if match and match.group(1).upper() not in ("DISTINCT",):
        return SelectItem(match.group(1), normalize_identifier(match.group(2)))

    qualified = _QUALIFIED.match(item)
    if qualified:
        return SelectItem(item, normalize_identifier(qualified.group(2)))
    if _IDENTIFIER.match(item):
        return SelectItem(item, normalize_identifier(item))

    raise SchemaParseError(
        f"View column '{item}' needs an AS alias (computed columns are not named after their expression)"
    )


def parse_view_statement(name: str, body: str) -> ViewDef:
    """Parse the text after ``CREATE VIEW <name> AS``."""
    check_balanced(body, f"view {name}")
    select = _SELECT.match(body)
    if not select:
        raise SchemaParseError(f"View {name} does not start with SELECT")
    body = body[select.end():]

    view = ViewDef(name=name)
    from_at = _find_keyword(body, "FROM")
    if from_at < 0:
        select_list, from_clause = body, ""
    else:
        select_list, from_clause = body[:from_at], body[from_at + len("FROM"):]
        for keyword in _TAIL_KEYWORDS:
            cut = _find_keyword(from_clause, keyword)
            if cut >= 0:
                from_clause = from_clause[:cut]

    view.aliases = parse_aliases(from_clause.strip())
    view.items = [parse_select_item(item) for item in split_top_level(select_list, ",")]
    return view


def parse_views(sql: str) -> list[ViewDef]:
    """Parse every CREATE VIEW statement in a script, in source order."""
    hints = domain_hints(sql)
    text = blank_comments(sql)
    views: list[ViewDef] = []
    for match in _CREATE_VIEW.finditer(text):
        name = normalize_identifier(match.group(1))
        end = _statement_end(text, match.end())
        view = parse_view_statement(name, text[match.end():end].strip())
        view.domain_hint = hint_at(hints, match.start())
        views.append(view)
        logger.debug("Parsed view %s with %d select item(s)", name, len(view.items))
    logger.info("Parsed %d view(s)", len(views))
    return views


# =============================================================================
# Type resolution
# =============================================================================


class ViewResolver:
    """Types view columns against known tables and previously resolved views.

    Args:
        sources: Source name -> ordered columns; grows as views resolve
        strict: Raise instead of falling back to nullable string
    """

    def __init__(self, sources: dict[str, list[ColumnDef]], strict: bool = False):
        self.sources = sources
        self.strict = strict

    def resolve(self, view: ViewDef) -> list[ColumnDef]:
        columns: list[ColumnDef] = []
        for item in view.items:
            if item.output_name is None:
                columns.extend(self._expand_star(view, item.expression))
                continue
            resolved = self.resolve_expression(view, item.expression)
            if not resolved.resolved:
                message = f"Cannot resolve type of {view.name}.{item.output_name} ({item.expression})"
                if self.strict:
                    raise SchemaParseError(message)
                logger.warning("%s; falling back to nullable string", message)
            columns.append(
                ColumnDef(
                    name=item.output_name,
                    type=resolved.type,
                    nullable=resolved.nullable,
                    precision=resolved.precision,
                    scale=resolved.scale,
                )
            )

        seen: set[str] = set()
        for col in columns:
            if col.name in seen:
                raise SchemaParseError(f"Duplicate column '{col.name}' in view {view.name}")
            seen.add(col.name)

        self.sources[view.name] = columns
        return columns

    def resolve_expression(self, view: ViewDef, expression: str) -> ResolvedColumn:
        expression = expression.strip()

        aggregate = _AGGREGATE.match(expression)
        if aggregate:
            func = aggregate.group(1).upper()
            inner = re.sub(r"^\s*DISTINCT\s+", "", aggregate.group(2), flags=re.IGNORECASE).strip()
            if func == "COUNT":
                return ResolvedColumn(NeutralType.INT64, False)
            if func == "AVG":
                return ResolvedColumn(NeutralType.FLOAT64, True)
            inner_type = self.resolve_expression(view, inner)
            if func == "SUM":
                if inner_type.type is NeutralType.DECIMAL:
                    return ResolvedColumn(
                        NeutralType.DECIMAL, True, inner_type.precision, inner_type.scale
                    )
                return ResolvedColumn(NeutralType.DECIMAL, True)
            # MIN / MAX
            return ResolvedColumn(
                inner_type.type, True, inner_type.precision, inner_type.scale, inner_type.resolved
            )

        cast = _CAST.match(expression)
        if cast:
            inner_type = self.resolve_expression(view, cast.group(1))
            return ResolvedColumn(sql_to_neutral(cast.group(2)), inner_type.nullable)

        if expression.startswith("'") and expression.endswith("'"):
            return ResolvedColumn(NeutralType.STRING, False)
        if _INTEGER_LITERAL.match(expression):
            return ResolvedColumn(NeutralType.INT64, False)
        if _FLOAT_LITERAL.match(expression):
            return ResolvedColumn(NeutralType.FLOAT64, False)

        qualified = _QUALIFIED.match(expression)
        if qualified:
            alias = normalize_identifier(qualified.group(1))
            column = self._lookup(view.aliases.get(alias, alias), qualified.group(2))
            return self._from_column(column)

        if _IDENTIFIER.match(expression):
            name = normalize_identifier(expression)
            matches = [
                col
                for source in dict.fromkeys(s for s in view.aliases.values() if s)
                if (col := self._lookup(source, name)) is not None
            ]
            if len(matches) == 1:
                return self._from_column(matches[0])

        return _UNRESOLVED

    def _lookup(self, source: str | None, column: str) -> ColumnDef | None:
        if source is None:
            return None
        lowered = normalize_identifier(column)
        for col in self.sources.get(source, ()):
            if col.name == lowered:
                return col
        return None

    @staticmethod
    def _from_column(column: ColumnDef | None) -> ResolvedColumn:
        if column is None:
            return _UNRESOLVED
        return ResolvedColumn(column.type, column.nullable, column.precision, column.scale)

    def _expand_star(self, view: ViewDef, expression: str) -> list[ColumnDef]:
        if expression == "*":
            sources = list(dict.fromkeys(s for s in view.aliases.values()))
        else:
            alias = normalize_identifier(expression[:-2])
            sources = [view.aliases.get(alias, alias)]

        columns: list[ColumnDef] = []
        for source in sources:
            known = self.sources.get(source) if source else None
            if known is None:
                message = f"Cannot expand {expression} in view {view.name}: unknown source"
                if self.strict:
                    raise SchemaParseError(message)
                logger.warning(message)
                continue
            columns.extend(
                ColumnDef(
                    name=c.name,
                    type=c.type,
                    nullable=c.nullable,
                    precision=c.precision,
                    scale=c.scale,
                    sql_type=c.sql_type,
                )
                for c in known
            )
        return columns
