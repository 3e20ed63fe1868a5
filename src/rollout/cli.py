"""Container app rollout CLI (rollout).

Usage:
    rollout deploy-yaml -s SUB -g RG -n APP manifest.yaml
    rollout add-revision -s SUB -g RG -n APP --image registry/app:tag
    rollout ingress -s SUB -g RG -n APP
    rollout secrets -s SUB -g RG -n APP
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

import click

from .clients import ClientFactory
from .config import Config, ConfigurationError
from .credentials import CredentialError, DefaultCredentialProvider
from .errors import ErrorWithSuggestion, RolloutError
from .main import run_cancellable, setup_logging
from .manifest import load_manifest
from .service import ContainerAppService

EXIT_FAILURE = 1
EXIT_CANCELLED = 130

logger = logging.getLogger(__name__)


def echo_progress(message: str) -> None:
    click.echo(f"  {message}")


def build_service(
    config: Config,
) -> tuple[ContainerAppService, ClientFactory, DefaultCredentialProvider]:
    provider = DefaultCredentialProvider(config.managed_identity_client_id)
    factory = ClientFactory(provider, config)
    return ContainerAppService(factory, config), factory, provider


def run_operation(
    ctx: click.Context,
    operation: Callable[[ContainerAppService], Coroutine[Any, Any, Any]],
) -> Any:
    """Run one service operation and translate failures into exit codes."""
    config: Config = ctx.obj["config"]
    service, factory, provider = build_service(config)

    try:
        return asyncio.run(run_cancellable(operation(service)))
    except asyncio.CancelledError:
        logger.info("Operation cancelled")
        click.secho("Cancelled.", fg="yellow", err=True)
        sys.exit(EXIT_CANCELLED)
    except ErrorWithSuggestion as e:
        click.secho(f"ERROR: {e}", fg="red", err=True)
        click.echo(f"\nSuggestion: {e.suggestion}", err=True)
        sys.exit(EXIT_FAILURE)
    except (RolloutError, CredentialError) as e:
        logger.debug("Operation failed", exc_info=True)
        click.secho(f"ERROR: {e}", fg="red", err=True)
        sys.exit(EXIT_FAILURE)
    finally:
        factory.close()
        provider.close()


def target_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Common subscription / resource group / app options."""
    func = click.option(
        "--name", "-n", "app_name", required=True, help="Container app name."
    )(func)
    func = click.option(
        "--resource-group", "-g", required=True, help="Resource group of the container app."
    )(func)
    func = click.option(
        "--subscription", "-s", "subscription_id", required=True, envvar="AZURE_SUBSCRIPTION_ID",
        help="Subscription ID (defaults to AZURE_SUBSCRIPTION_ID).",
    )(func)
    return func


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="rollout")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.option("--json-logs/--no-json-logs", default=True, show_default=True)
@click.pass_context
def cli(ctx: click.Context, log_level: str, json_logs: bool) -> None:
    """Deploy Azure Container Apps and wait for healthy revisions."""
    setup_logging(log_level.upper(), json_output=json_logs)
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command("deploy-yaml")
@target_options
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def deploy_yaml(
    ctx: click.Context,
    subscription_id: str,
    resource_group: str,
    app_name: str,
    manifest: Path,
) -> None:
    """Apply a container app YAML manifest and wait for the revision."""
    config: Config = ctx.obj["config"]
    try:
        data = load_manifest(manifest, config.max_manifest_size_bytes)
    except RolloutError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Deploying {app_name} from {manifest}...")
    run_operation(
        ctx,
        lambda service: service.deploy_yaml(
            subscription_id, resource_group, app_name, data, echo_progress
        ),
    )
    click.secho(f"✓ {app_name} is running", fg="green")


@cli.command("add-revision")
@target_options
@click.option("--image", "-i", required=True, help="Image for the first container.")
@click.pass_context
def add_revision(
    ctx: click.Context,
    subscription_id: str,
    resource_group: str,
    app_name: str,
    image: str,
) -> None:
    """Roll out a new revision with an updated image."""
    click.echo(f"Adding revision to {app_name} with image {image}...")
    new_revision = run_operation(
        ctx,
        lambda service: service.add_revision(
            subscription_id, resource_group, app_name, image, echo_progress
        ),
    )
    click.secho(f"✓ Revision {new_revision} is running", fg="green")


@cli.command()
@target_options
@click.pass_context
def ingress(ctx: click.Context, subscription_id: str, resource_group: str, app_name: str) -> None:
    """Show the app's public hostnames."""
    configuration = run_operation(
        ctx,
        lambda service: service.get_ingress_configuration(
            subscription_id, resource_group, app_name
        ),
    )
    if not configuration.host_names:
        click.echo("No public ingress configured.")
    for host_name in configuration.host_names:
        click.echo(f"https://{host_name}")


@cli.command()
@target_options
@click.pass_context
def secrets(ctx: click.Context, subscription_id: str, resource_group: str, app_name: str) -> None:
    """List secret names (values are never printed)."""
    items = run_operation(
        ctx,
        lambda service: service.list_secrets(subscription_id, resource_group, app_name),
    )
    if not items:
        click.echo("No secrets.")
    for item in items:
        source = f" (Key Vault: {item.key_vault_url})" if item.key_vault_url else ""
        click.echo(f"{item.name}{source}")


def run() -> None:
    """Entry point for the rollout CLI."""
    cli(obj={})


if __name__ == "__main__":
    run()
