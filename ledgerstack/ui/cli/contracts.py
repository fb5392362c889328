"""
CLI commands for custom contract deployment.

Thin wrappers over ``ledgerstack.core.use_cases.stacks``.
"""

from __future__ import annotations

import json
import sys

import click


@click.group()
def deploy() -> None:
    """Deploy — put custom contracts on a running stack."""


@deploy.command("contract")
@click.argument("name")
@click.argument("filename")
@click.argument("contract", required=False, default="")
@click.argument("extra_args", nargs=-1)
@click.option("--member", "-m", "member_index", type=int, default=0, show_default=True,
              help="Index of the member that deploys.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def deploy_contract_cmd(
    ctx: click.Context,
    name: str,
    filename: str,
    contract: str,
    extra_args: tuple[str, ...],
    member_index: int,
    as_json: bool,
) -> None:
    """Deploy CONTRACT from FILENAME on stack NAME.

    For ethereum stacks FILENAME is a solc combined-json file and
    CONTRACT the contract's name in it.  Fabric stacks take a chaincode
    package and ``<channel> <chaincode> <version>`` as extra arguments.

    Examples:

        ledgerstack deploy contract dev build/combined.json simplestorage

        ledgerstack deploy contract fab asset.tar.gz "" firefly asset 1.0
    """
    from ledgerstack.core.use_cases.stacks import deploy_contract

    result = deploy_contract(
        name, filename, contract, member_index, list(extra_args),
        home=ctx.obj.get("home"),
        mock=ctx.obj.get("mock", False),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho("✅ Contract deployed", fg="green", bold=True)
    if result.message:
        click.echo(f"   {result.message}")
    for key, value in result.location.items():
        click.echo(f"   {key}: {value}")


@deploy.command("list")
@click.argument("name")
@click.argument("filename", required=False, default=None)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_contracts_cmd(ctx: click.Context, name: str, filename: str | None, as_json: bool) -> None:
    """Show contracts deployed on stack NAME, and those in FILENAME if given."""
    from ledgerstack.core.use_cases.stacks import list_contracts

    result = list_contracts(name, filename, home=ctx.obj.get("home"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if filename:
        click.secho(f"📋 Contracts in {filename}:", fg="cyan", bold=True)
        for contract in result.contracts:
            click.echo(f"   • {contract}")
        click.echo()

    click.secho(f"📋 Deployed on '{name}': {len(result.deployed)}", fg="cyan", bold=True)
    for deployed in result.deployed:
        location = ", ".join(f"{k}={v}" for k, v in deployed["location"].items())
        click.echo(f"   • {deployed['name']}  {location}")
