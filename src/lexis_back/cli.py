"""
lexis-back command line.

- init-db: create the schema in a SQLite database
- views:   list the named views
- explain: print the fetch plan a view compiles to
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from lexis_back.domain import ENTITIES, build_fetch_spec_registry
from lexis_back.domain.views import NAMED_VIEWS
from lexis_back.runtime.config import ResolverConfig
from lexis_back.runtime.errors import ViewResolutionError
from lexis_back.runtime.fetch_plan import compile_view
from lexis_back.runtime.logging import get_logger, setup_logging
from lexis_back.runtime.repository import DatabaseManager
from lexis_back.specs.context import AnonymousUser, CurrentUser, FetchContext
from lexis_back.specs.view import ViewDescription

app = typer.Typer(
    help="Entity view resolution for the lexis backend",
    no_args_is_help=True,
)

console = Console()
logger = get_logger("CLI")


@app.callback()
def main(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Log level (defaults to LEXIS_LOG_LEVEL or INFO)",
    ),
) -> None:
    config = ResolverConfig.from_env()
    setup_logging(log_dir=config.log_dir, level=log_level or config.log_level)


@app.command(name="init-db")
def init_db_command(
    db_path: Path = typer.Option(
        None,
        "--db-path",
        help="SQLite database file (defaults to LEXIS_DB_PATH or .lexis/data.db)",
    ),
) -> None:
    """Create every table of the schema."""
    path = db_path or ResolverConfig.from_env().db_path
    db = DatabaseManager(path)
    created = db.create_all_tables(ENTITIES)
    existing = len(ENTITIES) - len(created)
    logger.info(
        "Schema created",
        extra={"context": {"db_path": str(path), "tables": len(created), "existing": existing}},
    )
    message = f"Created {len(created)} tables in {path}"
    if existing:
        message += f" ({existing} already present)"
    console.print(f"[green]{message}[/green]")


@app.command(name="views")
def views_command() -> None:
    """List the named views."""
    table = Table(title="Named views")
    table.add_column("Name", style="cyan")
    table.add_column("Entity")
    table.add_column("Fields")
    table.add_column("Relations")
    for name, (entity_name, view) in NAMED_VIEWS.items():
        table.add_row(name, entity_name, ", ".join(view.fields), ", ".join(view.relations))
    console.print(table)


@app.command(name="explain")
def explain_command(
    entity: str = typer.Argument(..., help="Root entity type, e.g. Text"),
    view: str = typer.Argument(..., help="Named view or view JSON"),
    user_id: int = typer.Option(None, "--user-id", help="Compile for a logged in user"),
    profile_id: int = typer.Option(None, "--profile-id", help="Profile of --user-id (defaults to the user id)"),
    relation_filters: str = typer.Option(
        None, "--relation-filters", help='Relation filter overrides as JSON, e.g. {"texts": {"level": "A1"}}'
    ),
) -> None:
    """Show the fetch plan a view compiles to."""
    if view in NAMED_VIEWS:
        view_entity, view_description = NAMED_VIEWS[view]
        if view_entity != entity:
            console.print(f"[red]View '{view}' is a {view_entity} view, not a {entity} view[/red]")
            raise typer.Exit(1)
    else:
        try:
            view_description = ViewDescription.coerce(json.loads(view))
        except (json.JSONDecodeError, ValueError, TypeError) as e:
            console.print(f"[red]Not a named view or valid view JSON: {e}[/red]")
            raise typer.Exit(1)

    if user_id is not None:
        user = CurrentUser(id=user_id, username=f"user{user_id}", profile_id=profile_id or user_id)
    else:
        user = AnonymousUser()
    context = FetchContext(user=user)

    try:
        overrides = json.loads(relation_filters) if relation_filters else None
        plan = compile_view(view_description, build_fetch_spec_registry().get(entity), context, overrides)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid relation filters: {e}[/red]")
        raise typer.Exit(1)
    except ViewResolutionError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    console.print_json(json.dumps(plan.describe(), default=str))


if __name__ == "__main__":
    app()
