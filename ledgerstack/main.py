"""
ledgerstack — CLI entrypoint.

Usage:
    ledgerstack --help
    ledgerstack init dev 2
    ledgerstack start dev
"""

from __future__ import annotations

import json
import os
import sys

import click

from ledgerstack import __version__
from ledgerstack.core.observability.logging_config import setup_logging


def _progress(ctx: click.Context):
    """Progress printer honouring --quiet."""
    if ctx.obj.get("quiet"):
        return lambda message: None
    return lambda message: click.secho(f"   … {message}", fg="bright_black")


def _fail(error: str) -> None:
    click.secho(f"❌ {error}", fg="red")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="ledgerstack")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--home",
    type=click.Path(file_okay=False),
    default=None,
    help="ledgerstack home directory (default: $LSTACK_HOME or ~/.ledgerstack).",
)
@click.option(
    "--mock",
    is_flag=True,
    hidden=True,
    help="Record container commands instead of running docker.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    home: str | None,
    mock: bool,
) -> None:
    """ledgerstack — create and run local multi-member FireFly stacks."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["home"] = home
    ctx.obj["mock"] = mock

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("LSTACK_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("LSTACK_LOG_FILE"),
        log_file_level=os.environ.get("LSTACK_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


# ── init ────────────────────────────────────────────────────────


@cli.command()
@click.argument("name")
@click.argument("members", type=click.IntRange(min=1))
@click.option("--firefly-base-port", "-p", type=int, default=5000, show_default=True,
              help="Host port of the first member's FireFly API.")
@click.option("--services-base-port", "-s", type=int, default=5100, show_default=True,
              help="First host port handed out to supporting services.")
@click.option("--database", "-d", type=click.Choice(["sqlite3", "postgres"]), default="sqlite3",
              show_default=True, help="Database each FireFly core uses.")
@click.option("--blockchain-provider", "-b", default="geth", show_default=True,
              help="Blockchain provider (geth, besu, fabric, remote-rpc).")
@click.option("--token-provider", "-t", "token_providers", multiple=True,
              help="Token provider; repeat for several, or 'none' (default: erc1155).")
@click.option("--external", "-e", "external_processes", type=int, default=0,
              help="Run the first N FireFly cores outside docker.")
@click.option("--org-name", "org_names", multiple=True, help="Organization name per member.")
@click.option("--node-name", "node_names", multiple=True, help="Node name per member.")
@click.option("--release", "-r", default="latest", show_default=True,
              help="FireFly release whose manifest pins the images.")
@click.option("--manifest", "-m", "manifest_path", type=click.Path(dir_okay=False), default=None,
              help="Local manifest.json to use instead of a release.")
@click.option("--prometheus", "prometheus_enabled", is_flag=True, help="Add a prometheus service.")
@click.option("--prometheus-port", type=int, default=9090, show_default=True)
@click.option("--contract-address", default="", help="Use an already-deployed FireFly contract.")
@click.option("--remote-node-url", default="", help="JSON-RPC URL for the remote-rpc provider.")
@click.option("--chain-id", type=int, default=2021, show_default=True)
@click.option("--extra-core-config", type=click.Path(dir_okay=False), default=None,
              help="YAML merged over every generated FireFly core config.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def init(ctx: click.Context, name: str, members: int, as_json: bool, **kwargs) -> None:
    """Create a new stack NAME with MEMBERS members.

    Nothing is started; run ``ledgerstack start NAME`` afterwards.

    Examples:

        ledgerstack init dev 2

        ledgerstack init fab 2 -b fabric -d postgres
    """
    from ledgerstack.core.models.options import InitOptions
    from ledgerstack.core.use_cases.stacks import init_stack

    token_providers = list(kwargs["token_providers"]) or ["erc1155"]
    kwargs["token_providers"] = [t for t in token_providers if t != "none"]
    kwargs["org_names"] = list(kwargs["org_names"])
    kwargs["node_names"] = list(kwargs["node_names"])
    options = InitOptions(**kwargs)

    result = init_stack(
        name, members, options,
        home=ctx.obj.get("home"),
        mock=ctx.obj.get("mock", False),
        progress=_progress(ctx),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        _fail(result.error)

    click.secho(f"✅ Stack '{name}' created", fg="green", bold=True)
    click.echo(f"   Blockchain: {result.blockchain_provider}")
    click.echo(f"   Tokens:     {', '.join(result.token_providers) or '-'}")
    click.echo(f"   Directory:  {result.stack_dir}")
    for member in result.members:
        marker = " (external)" if member["external"] else ""
        click.echo(f"     • {member['id']}  {member['org_name']}  → :{member['ports']['firefly']}{marker}")
    click.echo(f"\n   To start it, run: ledgerstack start {name}")


# ── start / stop ────────────────────────────────────────────────


@cli.command()
@click.argument("name")
@click.option("--no-rollback", "-b", is_flag=True,
              help="Leave a failed first start in place for inspection.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def start(ctx: click.Context, name: str, no_rollback: bool, as_json: bool) -> None:
    """Start stack NAME (runs first-time setup on the first start)."""
    from ledgerstack.core.models.options import StartOptions
    from ledgerstack.core.use_cases.stacks import start_stack

    result = start_stack(
        name, StartOptions(no_rollback=no_rollback),
        home=ctx.obj.get("home"),
        mock=ctx.obj.get("mock", False),
        progress=_progress(ctx),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        _fail(result.error)

    click.secho(f"✅ Stack '{name}' is running", fg="green", bold=True)
    for member_id, url in result.ui_urls.items():
        click.echo(f"   Web UI for member '{member_id}': {url}")


def _run_simple(ctx: click.Context, fn, name: str, done: str) -> None:
    result = fn(
        name,
        home=ctx.obj.get("home"),
        mock=ctx.obj.get("mock", False),
        progress=_progress(ctx),
    )
    if result.error:
        _fail(result.error)
    click.secho(f"✅ {done}", fg="green")


@cli.command()
@click.argument("name")
@click.pass_context
def stop(ctx: click.Context, name: str) -> None:
    """Stop stack NAME; its data is kept."""
    from ledgerstack.core.use_cases.stacks import stop_stack

    _run_simple(ctx, stop_stack, name, f"Stack '{name}' stopped")


@cli.command()
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
def reset(ctx: click.Context, name: str, yes: bool) -> None:
    """Reset stack NAME to its freshly-initialized state."""
    from ledgerstack.core.use_cases.stacks import reset_stack

    if not yes:
        click.confirm(f"Reset stack '{name}'? All runtime data will be lost", abort=True)
    _run_simple(ctx, reset_stack, name, f"Stack '{name}' reset")


@cli.command()
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
def remove(ctx: click.Context, name: str, yes: bool) -> None:
    """Remove stack NAME completely."""
    from ledgerstack.core.use_cases.stacks import remove_stack

    if not yes:
        click.confirm(f"Remove stack '{name}' and all of its data?", abort=True)
    _run_simple(ctx, remove_stack, name, f"Stack '{name}' removed")


# ── inspection ──────────────────────────────────────────────────


@cli.command("ls")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_cmd(ctx: click.Context, as_json: bool) -> None:
    """List stacks."""
    from ledgerstack.core.use_cases.stacks import list_stacks

    result = list_stacks(home=ctx.obj.get("home"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        _fail(result.error)

    if not result.stacks:
        click.echo("No stacks. Create one with: ledgerstack init <name> <members>")
        return
    click.secho(f"📋 Stacks: {len(result.stacks)}", fg="cyan", bold=True)
    for stack_name in result.stacks:
        click.echo(f"   • {stack_name}")


@cli.command()
@click.argument("name")
@click.pass_context
def info(ctx: click.Context, name: str) -> None:
    """Show the containers of stack NAME."""
    from ledgerstack.core.use_cases.stacks import stack_info

    result = stack_info(name, home=ctx.obj.get("home"), mock=ctx.obj.get("mock", False))
    if result.error:
        _fail(result.error)
    click.echo(result.output, nl=False)


@cli.command()
@click.argument("name")
@click.option("--tail", "-n", type=int, default=None, help="Only the last N lines per service.")
@click.pass_context
def logs(ctx: click.Context, name: str, tail: int | None) -> None:
    """Print the logs of stack NAME."""
    from ledgerstack.core.use_cases.stacks import stack_logs

    result = stack_logs(name, tail, home=ctx.obj.get("home"), mock=ctx.obj.get("mock", False))
    if result.error:
        _fail(result.error)
    click.echo(result.output, nl=False)


@cli.command()
@click.argument("name")
@click.option("--retries", "-r", type=int, default=None, help="Retries per image.")
@click.pass_context
def pull(ctx: click.Context, name: str, retries: int | None) -> None:
    """Pull every image stack NAME uses."""
    from ledgerstack.core.use_cases.stacks import pull_stack

    result = pull_stack(
        name, retries,
        home=ctx.obj.get("home"),
        mock=ctx.obj.get("mock", False),
        progress=_progress(ctx),
    )
    if result.error:
        _fail(result.error)
    click.secho(f"✅ Pulled {len(result.images)} images", fg="green")


@cli.command("upgrade-layout")
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def upgrade_layout_cmd(ctx: click.Context, name: str, as_json: bool) -> None:
    """Move a stack created with the old flat layout into init/ and runtime/."""
    from ledgerstack.core.use_cases.stacks import upgrade_stack_layout

    result = upgrade_stack_layout(name, home=ctx.obj.get("home"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        _fail(result.error)

    assert result.upgrade is not None
    if result.upgrade.already_current:
        click.echo(f"Stack '{name}' already uses the current layout")
        return
    click.secho(f"✅ Stack '{name}' upgraded", fg="green")
    for moved in result.upgrade.moved:
        click.echo(f"   • {moved}")


# ── Sub-groups ──────────────────────────────────────────────────

from ledgerstack.ui.cli.accounts import accounts  # noqa: E402
from ledgerstack.ui.cli.contracts import deploy  # noqa: E402

cli.add_command(accounts)
cli.add_command(deploy)


if __name__ == "__main__":
    cli()
