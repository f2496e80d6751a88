"""CLI: duochat auth login|register|status|logout"""

from typing import Optional

import click
from rich.console import Console

from duochat.client import AsyncDuoChat
from duochat.errors import AuthError

console = Console()


def _load_config() -> dict:
    from duochat.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from duochat.cli.main import _save_config
    _save_config(cfg)


def _base_url(cfg: dict) -> str:
    from duochat.cli.main import _base_url
    return _base_url(cfg)


def _run(coro):
    from duochat.cli.main import _run
    return _run(coro)


@click.group()
def auth():
    """Authentication commands."""


@auth.command("login")
@click.option("--base-url", default=None, help="DuoChat backend URL")
def auth_login(base_url: Optional[str]):
    """Log in with email and password."""

    async def _login():
        cfg = _load_config()
        url = base_url or _base_url(cfg)
        client = AsyncDuoChat(base_url=url)

        email = click.prompt("Email")
        password = click.prompt("Password", hide_input=True)
        try:
            with console.status("Logging in..."):
                session = await client.login(email, password)
        except AuthError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            await client.http.close()
        console.print(f"[green]Logged in as {session.user.display_name or session.user.email} (ID: {session.user_id})[/green]")

        _save_config({**cfg, "access_token": session.token, "user": session.user.model_dump(), "base_url": url})
        console.print("[dim]Token saved to ~/.duochat/config.json[/dim]")

    _run(_login())


@auth.command("register")
@click.option("--base-url", default=None, help="DuoChat backend URL")
def auth_register(base_url: Optional[str]):
    """Create an account."""

    async def _register():
        cfg = _load_config()
        client = AsyncDuoChat(base_url=base_url or _base_url(cfg))
        name = click.prompt("Name")
        email = click.prompt("Email")
        password = click.prompt("Password", hide_input=True, confirmation_prompt=True)
        try:
            with console.status("Registering..."):
                await client.auth.register(name, email, password)
        except AuthError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            await client.http.close()
        console.print("[green]Registered. Run `duochat auth login`.[/green]")

    _run(_register())


@auth.command("status")
def auth_status():
    """Show current auth status."""
    cfg = _load_config()
    user = cfg.get("user") or {}
    if cfg.get("access_token"):
        console.print(f"[green]Logged in[/green] as {user.get('email', 'unknown')} (ID: {user.get('id')})")
    else:
        console.print("[yellow]Not logged in. Run `duochat auth login`.[/yellow]")


@auth.command("logout")
def auth_logout():
    """Clear saved credentials."""
    _save_config({})
    console.print("[green]Logged out.[/green]")
