"""CLI entry point for the workbench backend.

Usage::

    workbench --help
    workbench serve --port 8001
    workbench create-tables --config workbench.yaml
    workbench check-reachability
    workbench reach --id 123456789012 --type ds_account
"""

from __future__ import annotations

import json
import logging
from typing import Optional

import typer

from workbench import ui
from workbench.config import WorkbenchSettings
from workbench.context import system_request_context
from workbench.errors import ServiceError
from workbench.services import build_services

LOGGER = logging.getLogger("workbench.cli")

app = typer.Typer(
    name="workbench",
    help="Register data sources and check their reachability.",
    no_args_is_help=True,
)


def _settings(config: Optional[str], debug: bool) -> WorkbenchSettings:
    settings = WorkbenchSettings.load(config)
    logging.basicConfig(
        level=logging.DEBUG if debug else settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return settings


ConfigOption = typer.Option(None, "--config", help="Path to a workbench settings YAML.")
DebugOption = typer.Option(False, "--debug", help="Enable debug logging.")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Interface to bind."),
    port: int = typer.Option(8001, "--port", help="Port to listen on."),
    config: Optional[str] = ConfigOption,
    debug: bool = DebugOption,
) -> None:
    """Run the REST API with uvicorn."""
    import uvicorn

    from workbench.api import create_app
    from workbench.auth import CognitoAuth

    settings = _settings(config, debug)
    cognito_auth = None
    if settings.enable_auth:
        if not (settings.cognito_user_pool_id and settings.cognito_app_client_id):
            ui.fail("enable_auth requires cognito_user_pool_id and cognito_app_client_id")
            raise typer.Exit(1)
        cognito_auth = CognitoAuth(
            settings.region,
            settings.cognito_user_pool_id,
            settings.cognito_app_client_id,
        )

    app_ = create_app(build_services(settings), cognito_auth=cognito_auth, enable_auth=settings.enable_auth)
    ui.step(f"Serving on http://{host}:{port}")
    uvicorn.run(app_, host=host, port=port, log_level="debug" if debug else "info")


@app.command("create-tables")
def create_tables(
    config: Optional[str] = ConfigOption,
    debug: bool = DebugOption,
) -> None:
    """Create the DynamoDB tables if they do not exist."""
    services = build_services(_settings(config, debug))
    services.create_tables()
    for table in services.tables:
        ui.ok(f"Table {table.table_name} ready")


@app.command("check-reachability")
def check_reachability(
    config: Optional[str] = ConfigOption,
    debug: bool = DebugOption,
) -> None:
    """Run the scheduled reachability check once."""
    from workbench.reachability_job import run_reachability_check

    services = build_services(_settings(config, debug))
    counts = run_reachability_check(services)
    ui.ok(
        f"Triggered {counts['bulk_checks']} bulk account checks and "
        f"{counts['study_checks']} study checks"
    )


@app.command()
def reach(
    entity_id: str = typer.Option(..., "--id", help="Account id, study id, or '*'."),
    entity_type: Optional[str] = typer.Option(None, "--type", help="ds_account or study."),
    status: Optional[str] = typer.Option(None, "--status", help="Status filter for '*'."),
    force_check_all: bool = typer.Option(False, "--force-check-all", help="Check reachable roles too."),
    config: Optional[str] = ConfigOption,
    debug: bool = DebugOption,
) -> None:
    """Check the reachability of one data source."""
    services = build_services(_settings(config, debug))
    params = {"id": entity_id}
    if entity_type:
        params["type"] = entity_type
    if status:
        params["status"] = status
    try:
        result = services.reachability_service.attempt_reach(
            system_request_context(), params, force_check_all
        )
    except ServiceError as e:
        ui.fail(e.message)
        raise typer.Exit(1)
    if result is None:
        ui.ok("Bulk reachability check started")
    elif result == "reachable":
        ui.ok(f"{entity_id} is reachable")
    else:
        ui.warn(f"{entity_id} is {result}")


@app.command("list-accounts")
def list_accounts(
    as_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
    config: Optional[str] = ConfigOption,
    debug: bool = DebugOption,
) -> None:
    """List registered data source accounts."""
    services = build_services(_settings(config, debug))
    accounts = services.account_service.list(system_request_context())
    if as_json:
        typer.echo(json.dumps(accounts, indent=2, sort_keys=True, default=str))
    else:
        ui.accounts_table(accounts)


def main() -> None:
    app()
