from __future__ import annotations

import json
from typing import Optional

import typer
import uvicorn

from shared.logging import setup_logging

from .app import create_app
from .config import get_settings
from .errors import IdentityError, NotFound
from .repository import PostgresContactStore, create_store
from .services import IdentityReconciler

cli = typer.Typer(help="Identity reconciliation service entrypoint")


def _reconciler() -> IdentityReconciler:
    settings = get_settings()
    setup_logging(settings.log_level)
    return IdentityReconciler(create_store(settings), default_region=settings.default_region)


@cli.command()
def serve(host: str = "0.0.0.0", port: int = 8080) -> None:
    """Start the identity API using uvicorn."""

    settings = get_settings()
    app = create_app(settings=settings)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower(), lifespan="on")


@cli.command("init-db")
def init_db() -> None:
    """Create the contacts table and its indexes when missing."""

    settings = get_settings()
    setup_logging(settings.log_level)
    PostgresContactStore(settings.database_url).ensure_schema()
    typer.echo("contacts schema ready")


@cli.command()
def reconcile(email: str, phone_number: str) -> None:
    """Reconcile one (email, phone) sighting and print the resulting contact."""

    try:
        contact = _reconciler().reconcile(email, phone_number)
    except IdentityError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(contact.model_dump_json(by_alias=True, indent=2))


@cli.command()
def identify(
    email: Optional[str] = typer.Option(None, help="Email to look up"),
    phone: Optional[str] = typer.Option(None, help="Phone number to look up"),
) -> None:
    """Print the consolidated identity for an email and/or phone number."""

    try:
        result = _reconciler().identify(email, phone)
    except IdentityError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    if isinstance(result, NotFound):
        typer.echo(json.dumps({"error": "No matching contact found"}))
        raise typer.Exit(code=2)
    typer.echo(json.dumps({"contact": result.model_dump(by_alias=True)}, indent=2))


if __name__ == "__main__":
    cli()
