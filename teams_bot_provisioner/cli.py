"""
Command line interface.

Commands:
    teams-bot-provisioner create           - Register a new Teams bot
    teams-bot-provisioner update-endpoint  - Change a bot's messaging endpoint
    teams-bot-provisioner rotate-secret    - Issue an additional client secret
    teams-bot-provisioner teardown         - Delete a bot (and its app registration)
    teams-bot-provisioner package          - Build the sideloadable Teams app zip
"""

import logging
from typing import Optional

import typer

from .config import config
from .exceptions import ProvisionerError
from .manifest import build_package
from .models import CredentialsRecord
from .provisioner import BotProvisioner
from .reporter import Reporter
from .session import AzureSession


app = typer.Typer(help="Provision Microsoft Teams bots on Azure", no_args_is_help=True)

reporter = Reporter()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ...)"
    ),
):
    """Configure logging once per invocation."""
    level = (log_level or config.monitoring.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_provisioner() -> BotProvisioner:
    return BotProvisioner(AzureSession(config.azure), reporter=reporter, settings=config)


def _fail(error: ProvisionerError):
    step = f" ({error.step})" if error.step else ""
    reporter.error(f"Failed{step}: {error}")
    raise typer.Exit(code=1)


@app.command("create")
def create_cmd(
    bot_name: str = typer.Argument(..., help="Bot and app registration name"),
    resource_group: str = typer.Argument(..., help="Resource group (created if missing)"),
    endpoint: str = typer.Argument(..., help="HTTPS messaging endpoint, e.g. https://mybot.example.com/api/messages"),
    location: Optional[str] = typer.Argument(None, help="Region for a new resource group"),
    skip_consent: bool = typer.Option(
        False, "--skip-consent", help="Don't try to grant admin consent automatically"
    ),
):
    """Register an app, create the Azure Bot and enable the Teams channel."""
    try:
        build_provisioner().create_bot(
            bot_name, resource_group, endpoint, location=location, skip_consent=skip_consent
        )
    except ProvisionerError as e:
        _fail(e)


@app.command("update-endpoint")
def update_endpoint_cmd(
    bot_name: str = typer.Argument(..., help="Bot name"),
    resource_group: str = typer.Argument(..., help="Resource group of the bot"),
    endpoint: str = typer.Argument(..., help="New HTTPS messaging endpoint"),
):
    """Point an existing bot at a new messaging endpoint."""
    try:
        build_provisioner().update_endpoint(bot_name, resource_group, endpoint)
    except ProvisionerError as e:
        _fail(e)


@app.command("rotate-secret")
def rotate_secret_cmd(
    bot_name: str = typer.Argument(..., help="Bot name"),
    resource_group: str = typer.Argument(..., help="Resource group of the bot"),
    years: int = typer.Option(2, "--years", help="Validity of the new secret (1-5 years)"),
):
    """Create a new client secret. Existing secrets stay valid."""
    try:
        build_provisioner().rotate_secret(bot_name, resource_group, years=years)
    except ProvisionerError as e:
        _fail(e)


@app.command("teardown")
def teardown_cmd(
    bot_name: str = typer.Argument(..., help="Bot name"),
    resource_group: str = typer.Argument(..., help="Resource group of the bot"),
    keep_app: bool = typer.Option(False, "--keep-app", help="Keep the app registration"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
):
    """Delete the Azure Bot and, unless --keep-app, its app registration."""
    try:
        build_provisioner().teardown(
            bot_name,
            resource_group,
            keep_app=keep_app,
            skip_confirmation=yes,
            confirm=lambda question: typer.confirm(question, default=False),
        )
    except ProvisionerError as e:
        _fail(e)


@app.command("package")
def package_cmd(
    bot_name: str = typer.Argument(..., help="Bot name"),
    app_id: Optional[str] = typer.Option(
        None, "--app-id", help="Application id (default: read from <bot>-credentials.json)"
    ),
    endpoint: Optional[str] = typer.Option(
        None, "--endpoint", help="Messaging endpoint whose host goes into validDomains"
    ),
    output_dir: str = typer.Option(".", "--output-dir", "-o", help="Where to write the package"),
):
    """Build the Teams app package for manual upload."""
    if not app_id:
        try:
            record = CredentialsRecord.load(bot_name, config.provisioning.credentials_dir)
        except FileNotFoundError:
            reporter.error(
                f"No {CredentialsRecord.filename(bot_name)} found. Pass --app-id explicitly."
            )
            raise typer.Exit(code=1)
        app_id = record.app_id
        endpoint = endpoint or record.endpoint

    try:
        path = build_package(bot_name, app_id, config.manifest, output_dir=output_dir, endpoint=endpoint)
    except ProvisionerError as e:
        _fail(e)

    reporter.success(f"Teams app package created: {path}")
    reporter.info("Upload it in Teams: Apps > Manage your apps > Upload an app")
