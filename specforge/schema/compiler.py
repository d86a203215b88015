"""
Schema compiler: table and view DDL to Entity IR.

Compilation flow:
1. Seed a FieldNumberRegistry from the previously emitted IR (if any)
2. Parse CREATE TABLE statements into models
3. Parse CREATE VIEW statements, resolving column types against tables
   and earlier views
4. Group entities by domain and emit the new IR
"""

from __future__ import annotations

import logging
from pathlib import Path

from specforge.core.config import Settings, get_settings
from specforge.core.errors import SchemaParseError
from specforge.core.naming import to_model_name, to_resource_name, to_view_model_name
from .ir import Domain, EntityIR, Field, Model, View
from .registry import FieldNumberRegistry
from .sql import ColumnDef, parse_tables
from .views import ViewResolver, parse_views

logger = logging.getLogger(__name__)


class SchemaCompiler:
    """Compiles SQL DDL into an EntityIR.

    Usage:
        compiler = SchemaCompiler()
        ir = compiler.compile(schema_sql, views_sql, previous=old_ir)
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def compile(
        self,
        schema_sql: str,
        views_sql: str | None = None,
        previous: EntityIR | None = None,
    ) -> EntityIR:
        """
        Compile table and view definitions.

        Args:
            schema_sql: Script containing CREATE TABLE (and optionally CREATE VIEW)
            views_sql: Optional script of CREATE VIEW statements
            previous: Last emitted IR; its field numbers are preserved

        Returns:
            The new EntityIR
        """
        registry = FieldNumberRegistry.from_entity_ir(previous)
        models: dict[str, list[Model]] = {}
        views: dict[str, list[View]] = {}
        sources: dict[str, list[ColumnDef]] = {}

        for table in parse_tables(schema_sql):
            if table.name in sources:
                raise SchemaParseError(f"Table '{table.name}' is defined more than once")
            sources[table.name] = table.columns

            domain = self._domain_for(table.name, table.domain_hint, self.settings.table_domains)
            name = to_model_name(table.name)
            self._check_unique_name(name, domain, models, views)
            fields, reserved = self._fields(registry, domain, name, table.columns, table.primary_key)
            models.setdefault(domain, []).append(
                Model(
                    name=name,
                    source_table=table.name,
                    resource=to_resource_name(table.name),
                    fields=fields,
                    reserved=reserved,
                )
            )
            logger.debug("Compiled model %s.%s (%d fields)", domain, name, len(fields))

        view_defs = parse_views(schema_sql)
        if views_sql:
            view_defs += parse_views(views_sql)

        resolver = ViewResolver(sources, strict=self.settings.strict_views)
        for view in view_defs:
            if view.name in sources:
                raise SchemaParseError(f"View '{view.name}' clashes with an existing table or view")
            columns = resolver.resolve(view)

            domain = self._domain_for(view.name, view.domain_hint, self.settings.view_domains)
            name = to_view_model_name(view.name)
            self._check_unique_name(name, domain, models, views)
            fields, reserved = self._fields(registry, domain, name, columns, [])
            views.setdefault(domain, []).append(
                View(
                    name=name,
                    source_view=view.name,
                    resource=to_resource_name(view.name),
                    fields=fields,
                    reserved=reserved,
                )
            )
            logger.debug("Compiled view %s.%s (%d fields)", domain, name, len(fields))

        domains = {
            name: Domain(
                name=name,
                namespace=self.settings.namespace_for(name),
                models=tuple(models.get(name, ())),
                views=tuple(views.get(name, ())),
            )
            for name in sorted(set(models) | set(views))
        }
        ir = EntityIR(organization=self.settings.organization, domains=domains)
        logger.info(
            "Compiled %d model(s) and %d view(s) across %d domain(s)",
            sum(len(m) for m in models.values()),
            sum(len(v) for v in views.values()),
            len(domains),
        )
        return ir

    def _domain_for(self, source: str, hint: str | None, overrides: dict[str, str]) -> str:
        """Explicit mapping, else the section comment, else the default domain."""
        if source in overrides:
            return overrides[source]
        return hint or self.settings.default_domain

    @staticmethod
    def _check_unique_name(
        name: str, domain: str, models: dict[str, list[Model]], views: dict[str, list[View]]
    ) -> None:
        taken = [m.name for m in models.get(domain, ())] + [v.name for v in views.get(domain, ())]
        if name in taken:
            raise SchemaParseError(f"Entity name '{name}' is produced twice in domain '{domain}'")

    @staticmethod
    def _fields(
        registry: FieldNumberRegistry,
        domain: str,
        entity: str,
        columns: list[ColumnDef],
        primary_key: list[str],
    ) -> tuple[tuple[Field, ...], tuple[int, ...]]:
        fields = []
        for column in columns:
            position = primary_key.index(column.name) + 1 if column.name in primary_key else None
            fields.append(
                Field(
                    name=column.name,
                    type=column.type,
                    nullable=column.nullable,
                    field_number=registry.number_for(domain, entity, column.name),
                    primary_key=position is not None,
                    primary_key_position=position,
                    precision=column.precision,
                    scale=column.scale,
                )
            )
        reserved = registry.retired_numbers(domain, entity, [c.name for c in columns])
        return tuple(fields), reserved


# =============================================================================
# Convenience functions
# =============================================================================


def compile_schema(
    schema_sql: str,
    views_sql: str | None = None,
    previous: EntityIR | None = None,
    settings: Settings | None = None,
) -> EntityIR:
    """Compile DDL text with a fresh compiler."""
    return SchemaCompiler(settings).compile(schema_sql, views_sql, previous)


def compile_files(
    schema_path: str | Path,
    views_path: str | Path | None,
    output_path: str | Path,
    settings: Settings | None = None,
) -> EntityIR:
    """
    Compile DDL files and write models.yaml.

    The IR already at ``output_path`` (if any) seeds field numbering, so
    recompiling an edited schema keeps existing numbers.
    """
    schema_path = Path(schema_path)
    output_path = Path(output_path)
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_path}")

    views_sql = None
    if views_path is not None:
        views_path = Path(views_path)
        if views_path.exists():
            views_sql = views_path.read_text(encoding="utf-8")
        else:
            logger.info("No views file at %s, compiling tables only", views_path)

    previous = EntityIR.load(output_path) if output_path.exists() else None
    ir = compile_schema(schema_path.read_text(encoding="utf-8"), views_sql, previous, settings)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    ir.write(output_path)
    logger.info("Wrote entity IR to %s", output_path)
    return ir
