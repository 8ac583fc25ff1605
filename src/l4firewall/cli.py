"""L4 firewall operator CLI (l4fw).

Usage:
    l4fw run                       # Run the control loop
    l4fw sync                      # One reconciliation pass, then exit
    l4fw delete RULE               # Ensure a rule is deleted
    l4fw gcloud-cmd RULE [opts]    # Print the gcloud create command for a rule

Configuration is read from the same environment variables as the operator.
"""

from __future__ import annotations

import asyncio
import dataclasses
from pathlib import Path

import click

from .config import Config, ConfigurationError
from .controller import rule_label
from .description import API_VERSION_GA, make_l4_firewall_description
from .main import build_controller, main, setup_logging
from .models import FirewallParams, L4LBType, NetworkInfo, service_key
from .provider import FirewallProviderError
from .reconciler import FirewallAction, build_firewall_rule
from .security import KeyFileCredentialError
from .xpn import FirewallXPNError, firewall_to_gcloud_create_cmd


def load_config(specs_dir: str | None = None) -> Config:
    """Load config from the environment, optionally overriding the specs dir."""
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    if specs_dir is None:
        return config
    try:
        return dataclasses.replace(config, specs_dir=Path(specs_dir))
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="l4fw")
def cli() -> None:
    """L4 load balancer firewall operator CLI (l4fw)."""
    pass


@cli.command("run")
def run_cmd() -> None:
    """Run the control loop until SIGTERM/SIGINT."""
    raise SystemExit(asyncio.run(main()))


@cli.command()
@click.option("--specs-dir", type=click.Path(exists=True, file_okay=False), help="Specs directory")
def sync(specs_dir: str | None) -> None:
    """Run one reconciliation pass and print a summary."""
    config = load_config(specs_dir)
    setup_logging(json_output=False, level=config.log_level)
    try:
        controller = build_controller(config)
    except KeyFileCredentialError as e:
        raise click.ClickException(str(e)) from e

    result = controller.reconcile_once()
    if result.error is not None:
        raise click.ClickException(str(result.error))

    for key, action in sorted(result.actions.items()):
        click.echo(f"  {rule_label(key)}: {action.value}")
    for key in result.xpn_notified:
        click.secho(f"  {rule_label(key)}: needs network owner (see events)", fg="yellow")
    for key, error in sorted(result.rule_errors.items()):
        click.secho(f"  {rule_label(key)}: {error}", fg="red")

    click.echo(
        f"created={result.count(FirewallAction.CREATED)} "
        f"patched={result.count(FirewallAction.PATCHED)} "
        f"unchanged={result.count(FirewallAction.UNCHANGED)} "
        f"deleted={result.count(FirewallAction.DELETED)} "
        f"failed={len(result.rule_errors)}"
    )
    if not result.success:
        raise SystemExit(1)


@cli.command()
@click.argument("rule")
def delete(rule: str) -> None:
    """Ensure the firewall rule RULE does not exist."""
    config = load_config()
    setup_logging(json_output=False, level=config.log_level)
    try:
        controller = build_controller(config)
    except KeyFileCredentialError as e:
        raise click.ClickException(str(e)) from e

    try:
        action = controller.reconciler.ensure_rule_deleted(rule)
    except FirewallXPNError as e:
        raise click.ClickException(e.message) from e
    except FirewallProviderError as e:
        raise click.ClickException(str(e)) from e
    click.secho(f"✓ {rule}: {action.value}", fg="green")


@cli.command("gcloud-cmd")
@click.argument("rule")
@click.option("--namespace", default="default", help="Owning service namespace")
@click.option("--service", "service_name", required=True, help="Owning service name")
@click.option("--ip", default="", help="Load balancer IP")
@click.option("--protocol", default="TCP", help="Protocol")
@click.option("--port", "ports", multiple=True, help="Port or port range (repeatable)")
@click.option("--source-range", "source_ranges", multiple=True, help="Source CIDR (repeatable)")
@click.option("--target-tag", "target_tags", multiple=True, required=True, help="Target tag")
@click.option("--network", required=True, help="Network URL or name")
@click.option("--project", "project_id", required=True, help="Network (host) project")
@click.option("--shared", is_flag=True, help="Rule is shared between services")
@click.option("--pinhole", is_flag=True, help="Restrict the rule to the load balancer IP")
def gcloud_cmd(
    rule: str,
    namespace: str,
    service_name: str,
    ip: str,
    protocol: str,
    ports: tuple[str, ...],
    source_ranges: tuple[str, ...],
    target_tags: tuple[str, ...],
    network: str,
    project_id: str,
    shared: bool,
    pinhole: bool,
) -> None:
    """Print the gcloud command that creates RULE, without calling the API.

    \b
    Example:
        l4fw gcloud-cmd k8s-fw-abc --service web --port 80 --port 443 \\
            --source-range 0.0.0.0/0 --target-tag gke-node \\
            --network default --project host-project
    """
    try:
        params = FirewallParams(
            name=rule,
            ip=ip,
            source_ranges=list(source_ranges),
            destination_ranges=[ip] if ip else [],
            port_ranges=list(ports),
            protocol=protocol,
            l4_type=L4LBType.INTERNAL,
            network=NetworkInfo(network_url=network),
        )
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    description, desc_err = make_l4_firewall_description(
        service_key(namespace, service_name), ip, API_VERSION_GA, shared
    )
    if desc_err is not None:
        click.secho(f"warning: {desc_err}", fg="yellow", err=True)

    expected = build_firewall_rule(params, list(target_tags), description, pinhole)
    click.echo(firewall_to_gcloud_create_cmd(expected, project_id))


def entrypoint() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    entrypoint()
