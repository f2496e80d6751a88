"""CLI: duochat chat"""

import asyncio

import click
from rich.console import Console

from duochat.errors import DuoChatError
from duochat.models.message import Message
from duochat.store import Conversation

console = Console()

HELP = "/history, /reply N text, /delete N, /delete-all N, /quit"


def _get_client(**kwargs):
    from duochat.cli.main import _get_client
    return _get_client(**kwargs)


def _run(coro):
    from duochat.cli.main import _run
    return _run(coro)


def render_line(index: int, message: Message, me: str, peer_name: str) -> str:
    who = "You" if message.sender == me else peer_name
    stamp = message.created_at.astimezone().strftime("%H:%M")
    if message.is_tombstoned:
        return f"[dim]{index:>3}  {stamp} {who}: [italic]Message deleted[/italic][/dim]"
    quote = ""
    if message.reply_to is not None:
        quote = f"[dim]↪ {message.reply_to.text[:40]}[/dim] "
    status = f" [dim]({message.status.value})[/dim]" if message.sender == me else ""
    return f"{index:>3}  {stamp} [bold]{who}[/bold]: {quote}{message.text}{status}"


def _pick(conversation: Conversation, arg: str) -> Message:
    visible = conversation.visible
    try:
        return visible[int(arg) - 1]
    except (ValueError, IndexError):
        raise click.BadParameter(f"no message #{arg}")


@click.command("chat")
@click.argument("peer")
def chat_cmd(peer: str):
    """Interactive chat with PEER (id or email)."""

    async def _chat():
        printed: set[str] = set()

        def on_change(conversation: Conversation) -> None:
            if conversation.room_key != client.engine.active_room_key:
                return
            for message in conversation.visible:
                if message.id in printed or message.client_id in printed:
                    continue
                printed.add(message.id)
                if message.client_id:
                    printed.add(message.client_id)
                if message.sender != me.id:
                    index = conversation.visible.index(message) + 1
                    console.print(render_line(index, message, me.id, target.display_name))

        def on_error(error: DuoChatError) -> None:
            console.print(f"[yellow]{error}[/yellow]")

        client = _get_client(on_change=on_change, on_error=on_error)
        me = client.session.user
        peers = await client.list_peers()
        target = next((p for p in peers if peer in (p.id, p.email)), None)
        if target is None:
            console.print(f"[red]No peer matches {peer!r}.[/red]")
            await client.aclose()
            return

        await client.connect()
        with console.status(f"Loading conversation with {target.display_name}..."):
            conversation = await client.open_conversation(target)
        if conversation is not None:
            for i, message in enumerate(conversation.visible, 1):
                printed.add(message.id)
                console.print(render_line(i, message, me.id, target.display_name))
        console.print(f"[cyan]Type a message ({HELP})[/cyan]\n")

        try:
            while True:
                line = await asyncio.to_thread(click.prompt, "You", prompt_suffix=": ")
                command, _, rest = line.partition(" ")
                try:
                    if command in ("/quit", "/exit"):
                        break
                    elif command == "/history":
                        for i, message in enumerate(client.messages().visible, 1):
                            console.print(render_line(i, message, me.id, target.display_name))
                    elif command == "/reply":
                        number, _, text = rest.partition(" ")
                        client.send(text, reply_to=_pick(client.messages(), number))
                    elif command == "/delete":
                        client.retract(_pick(client.messages(), rest), for_everyone=False)
                    elif command == "/delete-all":
                        client.retract(_pick(client.messages(), rest), for_everyone=True)
                    else:
                        client.send(line)
                except (DuoChatError, click.BadParameter) as e:
                    console.print(f"[red]{e}[/red]")
        except (KeyboardInterrupt, EOFError, click.Abort):
            pass
        finally:
            await client.aclose()

    _run(_chat())
