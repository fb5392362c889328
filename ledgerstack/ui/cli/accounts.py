"""
CLI commands for member accounts.

Thin wrappers over ``ledgerstack.core.use_cases.stacks``.
"""

from __future__ import annotations

import json
import sys

import click


@click.group()
def accounts() -> None:
    """Accounts — the signing identities of a stack's members."""


@accounts.command("list")
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_accounts_cmd(ctx: click.Context, name: str, as_json: bool) -> None:
    """List the account of every member of stack NAME."""
    from ledgerstack.core.use_cases.stacks import list_accounts

    result = list_accounts(name, home=ctx.obj.get("home"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"📋 Accounts of '{name}': {len(result.accounts)}", fg="cyan", bold=True)
    for account in result.accounts:
        marker = " (external)" if account["external"] else ""
        click.echo(f"   • {account['member']}  {account['address']}  {account['org_name']}{marker}")
