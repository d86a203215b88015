"""
Command line interface for specforge.

Commands:
- schema: Compile schema/views SQL to models.yaml
- rules: Compile feature files and metadata.yaml to specs.yaml
- evaluate: Evaluate a target's rules against an instance file
"""

from __future__ import annotations

from pathlib import Path

import typer
import yaml

from specforge.core.config import get_settings
from specforge.core.errors import CompileError
from specforge.core.logging import configure_logging
from specforge.schema.compiler import compile_files
from specforge.schema.ir import EntityIR
from specforge.rules.compiler import compile_directory, write_rule_ir
from specforge.rules.ir import RuleSetIR
from specforge.runtime.context import MetadataContext
from specforge.runtime.engine import RuleEngine

app = typer.Typer(
    help="Compile SQL schemas and rule scenarios into IRs, and evaluate rules",
    no_args_is_help=True,
)


@app.callback()
def main(
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Logging level (default: SPECFORGE_LOG_LEVEL or INFO)",
    ),
) -> None:
    configure_logging(log_level or get_settings().log_level)


def _load_document(path: Path) -> dict:
    """Load a JSON or YAML mapping."""
    if not path.exists():
        typer.echo(f"File not found: {path}", err=True)
        raise typer.Exit(code=1)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        typer.echo(f"Could not parse {path}: {e}", err=True)
        raise typer.Exit(code=1)
    if not isinstance(data, dict):
        typer.echo(f"{path} must contain a mapping", err=True)
        raise typer.Exit(code=1)
    return data


@app.command(name="schema")
def schema_command(
    schema: Path | None = typer.Option(None, "--schema", "-s", help="CREATE TABLE script"),
    views: Path | None = typer.Option(None, "--views", "-v", help="CREATE VIEW script"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Entity IR output (models.yaml)"),
) -> None:
    """
    Compile SQL DDL into the Entity IR.

    Field numbers already present in the output file are preserved.

    Examples:
        specforge schema
        specforge schema -s db/schema.sql -v db/views.sql -o build/models.yaml
    """
    settings = get_settings()
    schema = schema or Path(settings.schema_path)
    views = views or Path(settings.views_path)
    output = output or Path(settings.models_path)

    try:
        ir = compile_files(schema, views, output, settings)
    except (CompileError, FileNotFoundError) as e:
        typer.echo(f"Schema compilation failed: {e}", err=True)
        raise typer.Exit(code=1)

    entities = sum(1 for _ in ir.iter_entities())
    typer.echo(f"Wrote {output} with {entities} entities in {len(ir.domains)} domain(s)")


@app.command(name="rules")
def rules_command(
    features: Path | None = typer.Option(None, "--features", "-f", help="Directory of .feature files"),
    metadata: Path | None = typer.Option(None, "--metadata", "-m", help="Metadata catalog (metadata.yaml)"),
    models: Path | None = typer.Option(
        None, "--models", help="Entity IR to validate targets and fields against"
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Rule IR output (specs.yaml)"),
) -> None:
    """
    Compile rule scenarios into the Rule IR.

    Examples:
        specforge rules
        specforge rules -f features -m metadata.yaml --models models.yaml -o specs.yaml
    """
    settings = get_settings()
    features = features or Path(settings.features_dir)
    metadata = metadata or Path(settings.metadata_path)
    output = output or Path(settings.specs_path)

    entity_ir = None
    if models is not None:
        try:
            entity_ir = EntityIR.load(models)
        except FileNotFoundError as e:
            typer.echo(str(e), err=True)
            raise typer.Exit(code=1)

    try:
        rule_ir = compile_directory(features, metadata, entity_ir, settings)
    except (CompileError, FileNotFoundError) as e:
        typer.echo(f"Rule compilation failed: {e}", err=True)
        raise typer.Exit(code=1)

    write_rule_ir(rule_ir, output)
    typer.echo(f"Wrote {output} with {len(rule_ir.rules)} rules")


@app.command(name="evaluate")
def evaluate_command(
    target: str = typer.Argument(..., help="Target model or view name (e.g. employees)"),
    instance: Path = typer.Argument(..., help="JSON/YAML file with the instance fields"),
    specs: Path | None = typer.Option(None, "--specs", help="Rule IR (specs.yaml)"),
    context: Path | None = typer.Option(
        None, "--context", "-c", help="JSON/YAML file mapping metadata category -> fields"
    ),
    models: Path | None = typer.Option(
        None, "--models", help="Entity IR used to resolve entity names and resource slugs"
    ),
    domain: str | None = typer.Option(None, "--domain", "-d", help="Domain of the target"),
) -> None:
    """
    Evaluate every rule for a target against one instance.

    Exits with code 1 when a blocking rule fails.

    Examples:
        specforge evaluate employees employee.json
        specforge evaluate employees employee.yaml -c metadata.json
        specforge evaluate Employee employee.json --models models.yaml -d appget
    """
    specs = specs or Path(get_settings().specs_path)
    try:
        entity_ir = EntityIR.load(models) if models is not None else None
        engine = RuleEngine.from_rule_ir(RuleSetIR.load(specs), entity_ir)
    except (FileNotFoundError, yaml.YAMLError, ValueError) as e:
        typer.echo(f"Could not load rules: {e}", err=True)
        raise typer.Exit(code=1)

    data = _load_document(instance)
    metadata = MetadataContext(_load_document(context)) if context is not None else None

    try:
        result = engine.evaluate(target, data, metadata, domain)
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    if not result.outcomes:
        typer.echo(f"No rules for target '{target}'", err=True)

    for outcome in result.outcomes:
        flag = "PASS" if outcome.satisfied else "FAIL"
        line = f"{flag:4}  {outcome.rule}: {outcome.status}"
        if outcome.blocking:
            line += " [blocking]"
        if outcome.phase == "gate":
            line += f" (metadata gate: {outcome.failed_category or 'no context'})"
        elif outcome.error:
            line += f" (error: {outcome.error})"
        typer.echo(line)

    typer.echo(f"status: {result.status}")
    if result.blocking_failures:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
