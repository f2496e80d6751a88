"""CLI: duochat users list, duochat profile update"""

import json
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from duochat.users import UsersAPI

console = Console()


def _load_config() -> dict:
    from duochat.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from duochat.cli.main import _save_config
    _save_config(cfg)


def _get_client():
    from duochat.cli.main import _get_client
    return _get_client()


def _run(coro):
    from duochat.cli.main import _run
    return _run(coro)


@click.group()
def users():
    """Peer directory."""


@users.command("list")
@click.option("--search", default=None, help="Filter by display name")
@click.option("--json-output", "--json", is_flag=True)
def users_list(search: Optional[str], json_output: bool):
    """List everyone you can chat with."""

    async def _list():
        client = _get_client()
        try:
            peers = await client.list_peers()
        finally:
            await client.http.close()
        if search:
            peers = UsersAPI.search(peers, search)
        if json_output:
            click.echo(json.dumps([p.model_dump() for p in peers], indent=2))
            return
        table = Table(title=f"Peers ({len(peers)})")
        table.add_column("ID", style="bold")
        table.add_column("Name")
        table.add_column("Email")
        for p in peers:
            table.add_row(p.id, p.display_name, p.email)
        console.print(table)

    _run(_list())


@click.group()
def profile():
    """Profile management."""


@profile.command("update")
@click.option("--name", default=None)
@click.option("--email", default=None)
def profile_update(name: Optional[str], email: Optional[str]):
    """Update display name and/or email."""

    async def _update():
        client = _get_client()
        me = client.session.user  # type: ignore[union-attr]
        try:
            with console.status("Saving profile..."):
                updated = await client.users.update_profile(name or me.display_name, email or me.email)
        finally:
            await client.http.close()
        cfg = _load_config()
        _save_config({**cfg, "user": updated.model_dump()})
        console.print(f"[green]Profile updated: {updated.display_name} <{updated.email}>[/green]")

    _run(_update())
