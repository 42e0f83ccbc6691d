"""Command Line Interface for EDM Registry.

Typer commands for initialising a store, browsing the schema registry,
validating and bulk loading entity documents, and exporting collections.
"""

import json
from pathlib import Path
from typing import Optional

import pandas as pd
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from edm_registry import __version__
from edm_registry.adapters.document_reader import read_documents
from edm_registry.domain.ports import StoragePort
from edm_registry.domain.registry import REGISTRY, Domain
from edm_registry.domain.validation import StructuralValidator, stamp_document
from edm_registry.infrastructure.logging_config import setup_logging
from edm_registry.infrastructure.settings import settings

app = typer.Typer(
    name="edm",
    help="EDM Registry: enterprise data model schema registry and record store",
    add_completion=False
)
console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"{settings.app_name} {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    setup_logging(
        use_json=settings.log_json,
        log_level="DEBUG" if verbose else settings.log_level,
        rich_console=not settings.log_json,
    )


def create_storage_adapter_cli() -> StoragePort:
    """Create storage adapter based on configuration (CLI wrapper)."""
    from edm_registry.main import create_storage_adapter
    try:
        return create_storage_adapter()
    except (ValueError, RuntimeError) as e:
        console.print(f"[red]✗[/red] Failed to create storage adapter: {str(e)}")
        raise typer.Exit(code=1)


def _resolve_entity(entity: str) -> str:
    if entity not in REGISTRY:
        console.print(f"[red]✗[/red] Unknown entity or collection: {entity}")
        raise typer.Exit(code=1)
    return REGISTRY.get(entity).name


@app.command("init-db")
def init_db() -> None:
    """Create every collection and index of the data model."""
    from edm_registry.main import initialize_database

    storage = create_storage_adapter_cli()
    try:
        with console.status("[bold green]Initializing storage..."):
            result = initialize_database(storage)
    finally:
        storage.close()
    if result.is_failure():
        console.print(f"[red]✗[/red] Schema initialization failed: {result.error}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Initialized {len(REGISTRY)} collections")


@app.command()
def collections(
    domain: Optional[Domain] = typer.Option(None, "--domain", "-d", help="Only list one domain"),
) -> None:
    """List the collections of the data model."""
    table = Table(title="Collections")
    table.add_column("Entity", style="bold")
    table.add_column("Collection")
    table.add_column("Domain")
    table.add_column("Fields", justify="right")
    table.add_column("Indexes", justify="right")
    for spec in REGISTRY.entities(domain):
        table.add_row(spec.name, spec.collection, spec.domain.value, str(len(spec.fields())), str(len(spec.indexes)))
    console.print(table)


@app.command()
def describe(
    entity: str = typer.Argument(..., help="Entity or collection name"),
    json_schema: bool = typer.Option(False, "--json-schema", help="Print the $jsonSchema validator"),
) -> None:
    """Show the fields and indexes of an entity."""
    spec = REGISTRY.get(_resolve_entity(entity))
    if json_schema:
        console.print_json(json.dumps(REGISTRY.to_json_schema(spec.name)))
        return

    fields = Table(title=f"{spec.name} ({spec.collection})")
    fields.add_column("Field", style="bold")
    fields.add_column("Type")
    fields.add_column("Required")
    fields.add_column("Constraints")
    for descriptor in spec.fields():
        constraints = []
        if descriptor.enum_values:
            constraints.append("enum: " + ", ".join(descriptor.enum_values))
        if descriptor.pattern:
            constraints.append(f"pattern: {descriptor.pattern}")
        if descriptor.max_length is not None:
            constraints.append(f"max_length: {descriptor.max_length}")
        if descriptor.minimum is not None:
            constraints.append(f"min: {descriptor.minimum}")
        if descriptor.maximum is not None:
            constraints.append(f"max: {descriptor.maximum}")
        fields.add_row(
            descriptor.name,
            descriptor.semantic_type.value,
            "yes" if descriptor.required else "",
            escape("; ".join(constraints)),
        )
    console.print(fields)

    indexes = Table(title="Indexes")
    indexes.add_column("Name")
    indexes.add_column("Unique")
    indexes.add_column("Sparse")
    for index in spec.indexes:
        indexes.add_row(index.name, "yes" if index.unique else "", "yes" if index.sparse else "")
    console.print(indexes)


@app.command()
def validate(
    entity: str = typer.Argument(..., help="Entity or collection name"),
    input_file: Path = typer.Argument(..., help="JSON, JSON Lines or CSV file", exists=True),
) -> None:
    """Check documents against an entity's structural contract without writing."""
    name = _resolve_entity(entity)
    model = REGISTRY.get(name).model
    validator = StructuralValidator(REGISTRY)
    checked = 0
    failures = []
    try:
        for chunk in read_documents(str(input_file), chunk_size=settings.batch_size):
            for document in chunk:
                checked += 1
                result = validator.validate(name, stamp_document(model, document))
                if result.is_failure():
                    for violation in result.error_details.get("violations", []):
                        failures.append((checked, violation))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    if not failures:
        console.print(f"[green]✓[/green] {checked} document(s) valid")
        return

    table = Table(title=f"Violations in {input_file.name}")
    table.add_column("Document", justify="right")
    table.add_column("Field")
    table.add_column("Rule")
    table.add_column("Message")
    for position, violation in failures:
        table.add_row(str(position), escape(violation["field"]), violation["rule"], escape(violation["message"]))
    console.print(table)
    invalid = len({position for position, _ in failures})
    console.print(f"[red]✗[/red] {invalid} of {checked} document(s) invalid")
    raise typer.Exit(code=1)


@app.command()
def load(
    entity: str = typer.Argument(..., help="Entity or collection name"),
    input_file: Path = typer.Argument(..., help="JSON, JSON Lines or CSV file", exists=True),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Documents per transaction"),
) -> None:
    """Validate documents and insert them through the write path."""
    from edm_registry.main import create_record_service, load_documents

    name = _resolve_entity(entity)
    storage = create_storage_adapter_cli()
    try:
        service = create_record_service(storage)
        with console.status(f"[bold green]Loading {name}..."):
            summary = load_documents(service, name, str(input_file), batch_size=batch_size)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        storage.close()

    console.print("\n[bold]Load Summary:[/bold]")
    summary_table = Table(show_header=False, box=None, padding=(0, 2))
    summary_table.add_row("Total processed:", f"[bold]{summary.total:,}[/bold]")
    summary_table.add_row("Loaded:", f"[green]{summary.loaded:,}[/green]")
    summary_table.add_row(
        "Rejected:", f"[red]{summary.rejected:,}[/red]" if summary.rejected > 0 else f"{summary.rejected:,}"
    )
    console.print(summary_table)
    for error in summary.errors[:20]:
        detail = error.get("rule") or ", ".join(f"{v['field']} ({v['rule']})" for v in error.get("violations", []))
        console.print(f"  [dim]#{error['position']}[/dim] {error['error_type']}: {escape(detail)}")
    if summary.rejected:
        raise typer.Exit(code=1)


@app.command()
def export(
    entity: str = typer.Argument(..., help="Entity or collection name"),
    output: Path = typer.Argument(..., help="Output CSV file"),
) -> None:
    """Export the committed documents of a collection to CSV."""
    name = _resolve_entity(entity)
    storage = create_storage_adapter_cli()
    try:
        if hasattr(storage, "export_dataframe"):
            df = storage.export_dataframe(name)
        else:
            df = pd.DataFrame([record.to_document() for record in storage.find(name)])
    finally:
        storage.close()
    df.to_csv(output, index=False)
    console.print(f"[green]✓[/green] Exported {len(df):,} {name} document(s) to {output}")


@app.command()
def info() -> None:
    """Show configuration and per-collection document counts."""
    console.print(f"\n[bold blue]{settings.app_name}[/bold blue] {__version__}")
    console.print(f"[dim]Database:[/dim] {settings.db_config.db_type}")
    if settings.db_config.db_type == "duckdb":
        console.print(f"[dim]Database path:[/dim] {settings.get_db_path()}")
    console.print(f"[dim]Validation mode:[/dim] {settings.write_config.validation_mode.value}")
    console.print(f"[dim]Retry attempts:[/dim] {settings.write_config.max_attempts}")
    console.print()

    storage = create_storage_adapter_cli()
    try:
        table = Table(title="Documents")
        table.add_column("Collection")
        table.add_column("Count", justify="right")
        for spec in REGISTRY:
            table.add_row(spec.collection, f"{storage.count(spec.name):,}")
    finally:
        storage.close()
    console.print(table)


if __name__ == "__main__":
    app()
