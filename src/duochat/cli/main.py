"""
DuoChat CLI — `duochat` command.

Commands:
  duochat auth login|register|status|logout
  duochat users list [--search]     Peer directory
  duochat profile update            Change display name / email
  duochat chat <peer>               Interactive conversation
"""

import asyncio
import json
import logging
import os
from pathlib import Path

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
except ImportError:
    raise SystemExit("CLI requires extras: pip install duochat-client[cli]")

from duochat.client import AsyncDuoChat
from duochat.models.session import SessionContext
from duochat.transport.http import DEFAULT_BASE_URL

console = Console()
CONFIG_FILE = Path.home() / ".duochat" / "config.json"
BASE_URL_ENV = "DUOCHAT_BASE_URL"


def _load_config() -> dict:
    try:
        return json.loads(CONFIG_FILE.read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def _save_config(cfg: dict) -> None:
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(cfg, indent=2))


def _base_url(cfg: dict) -> str:
    return os.environ.get(BASE_URL_ENV) or cfg.get("base_url") or DEFAULT_BASE_URL


def _load_session() -> SessionContext:
    cfg = _load_config()
    if not cfg.get("access_token") or not cfg.get("user"):
        console.print("[red]Not logged in. Run `duochat auth login` first.[/red]")
        raise SystemExit(1)
    return SessionContext.model_validate({
        "user": cfg["user"],
        "token": cfg["access_token"],
        "base_url": _base_url(cfg),
    })


def _get_client(**kwargs) -> AsyncDuoChat:
    return AsyncDuoChat.from_session(_load_session(), **kwargs)


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Log SDK activity to stderr.")
def main(verbose: bool):
    """DuoChat CLI — private one-to-one messaging."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


# Register subcommands from separate modules
from duochat.cli.auth import auth
from duochat.cli.chat import chat_cmd
from duochat.cli.users import users, profile

main.add_command(auth)
main.add_command(users)
main.add_command(profile)
main.add_command(chat_cmd)


if __name__ == "__main__":
    main()
