"""
Gherkin front end for rule scenario documents.

Documents are parsed with the official Gherkin parser and flattened into
the small structures the rule compiler consumes::

    @domain:hr
    Feature: Employee rules

      @target:employees @rule:AgeCheck @blocking
      Scenario: Adults only
        Given sso context requires:
          | field         | operator | value |
          | authenticated | ==       | true  |
        When age is at least 18
        Then status is "ADULT"
        But otherwise status is "MINOR"

``Rule:`` blocks are flattened into their scenarios (rule tags and rule
backgrounds are inherited). Scenario outlines expand to one scenario per
examples row, with ``<placeholder>`` substituted in names, tags, step text
and table cells.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from gherkin.errors import ParserError
from gherkin.parser import Parser

from specforge.core.errors import FeatureParseError

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"<([^<>]+)>")


@dataclass
class DataTable:
    rows: list[list[str]]
    line: int

    @property
    def header(self) -> list[str]:
        return self.rows[0] if self.rows else []

    @property
    def body(self) -> list[list[str]]:
        return self.rows[1:]


@dataclass
class Step:
    keyword: str
    text: str
    line: int
    table: DataTable | None = None
    doc_string: str | None = None


@dataclass
class Scenario:
    name: str
    line: int
    tags: list[str] = field(default_factory=list)
    steps: list[Step] = field(default_factory=list)
    background: list[Step] = field(default_factory=list)
    """Inherited Background steps (feature, then rule), run before ``steps``."""

    def tag_value(self, prefix: str) -> str | None:
        """Value of the first ``@prefix:value`` tag, or None."""
        return tag_value(self.tags, prefix)

    def has_tag(self, name: str) -> bool:
        return f"@{name}" in self.tags


@dataclass
class FeatureDocument:
    name: str
    source: str | None = None
    tags: list[str] = field(default_factory=list)
    description: str = ""
    background: list[Step] = field(default_factory=list)
    scenarios: list[Scenario] = field(default_factory=list)


def tag_value(tags: list[str], prefix: str) -> str | None:
    full = f"@{prefix}:"
    for tag in tags:
        if tag.startswith(full):
            return tag[len(full):]
    return None


# =============================================================================
# Gherkin AST mapping
# =============================================================================


def _substitute(text: str, values: dict[str, str]) -> str:
    if not values:
        return text
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), text)


def _tags(node: dict[str, Any], values: dict[str, str] | None = None) -> list[str]:
    return [_substitute(tag["name"], values or {}) for tag in node.get("tags", [])]


def _row(row: dict[str, Any]) -> list[str]:
    return [cell["value"] for cell in row.get("cells", [])]


def _step(node: dict[str, Any], values: dict[str, str] | None = None) -> Step:
    values = values or {}
    table = None
    if node.get("dataTable"):
        rows = node["dataTable"]["rows"]
        table = DataTable(
            rows=[[_substitute(cell, values) for cell in _row(row)] for row in rows],
            line=node["dataTable"]["location"]["line"],
        )
    doc_string = None
    if node.get("docString"):
        doc_string = _substitute(node["docString"]["content"], values)
    return Step(
        keyword=node["keyword"].strip(),
        text=_substitute(node["text"], values),
        line=node["location"]["line"],
        table=table,
        doc_string=doc_string,
    )


def _expand(node: dict[str, Any], inherited_tags: list[str], background: list[Step]) -> list[Scenario]:
    """One Scenario per plain scenario, or per examples row of an outline."""
    examples = node.get("examples") or []
    if not examples:
        return [
            Scenario(
                name=node["name"],
                line=node["location"]["line"],
                tags=_tags(node) + inherited_tags,
                steps=[_step(s) for s in node.get("steps", [])],
                background=list(background),
            )
        ]

    scenarios = []
    for block in examples:
        header = block.get("tableHeader")
        if header is None:
            continue
        names = _row(header)
        for row in block.get("tableBody", []):
            values = dict(zip(names, _row(row)))
            scenarios.append(
                Scenario(
                    name=_substitute(node["name"], values),
                    line=row["location"]["line"],
                    tags=_tags(block, values) + _tags(node, values) + inherited_tags,
                    steps=[_step(s, values) for s in node.get("steps", [])],
                    background=list(background),
                )
            )
    return scenarios


def _first_error(exc: ParserError) -> tuple[str, int | None]:
    """Message and line of the first error (the parser may collect several)."""
    errors = getattr(exc, "errors", None) or [exc]
    location = getattr(errors[0], "location", None) or {}
    return str(errors[0]), location.get("line")


def parse_feature(text: str, source: str | None = None) -> FeatureDocument:
    """
    Parse a scenario document.

    Args:
        text: Document contents
        source: File name used in error messages

    Returns:
        Parsed FeatureDocument

    Raises:
        FeatureParseError: On malformed Gherkin, with the offending line
    """
    try:
        ast = Parser().parse(text)
    except ParserError as exc:
        message, line = _first_error(exc)
        raise FeatureParseError(message, source, line) from exc

    feature = ast.get("feature")
    if not feature:
        raise FeatureParseError("No 'Feature:' found", source)

    document = FeatureDocument(
        name=feature["name"],
        source=source,
        tags=_tags(feature),
        description="\n".join(
            line.strip() for line in (feature.get("description") or "").splitlines()
        ).strip(),
    )

    for child in feature.get("children", []):
        if "background" in child:
            document.background = [_step(s) for s in child["background"].get("steps", [])]
        elif "scenario" in child:
            document.scenarios.extend(_expand(child["scenario"], [], document.background))
        elif "rule" in child:
            rule = child["rule"]
            rule_tags = _tags(rule)
            background = list(document.background)
            for rule_child in rule.get("children", []):
                if "background" in rule_child:
                    background += [_step(s) for s in rule_child["background"].get("steps", [])]
                elif "scenario" in rule_child:
                    document.scenarios.extend(_expand(rule_child["scenario"], rule_tags, background))

    logger.debug("Parsed %s: %d scenario(s)", source or "<text>", len(document.scenarios))
    return document
