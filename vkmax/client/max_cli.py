#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import aioconsole
import typer
from rich.console import Console

from vkmax.client.client import MaxClient
from vkmax.client.session_store import SessionStore
from vkmax.functions import media
from vkmax.functions.messages import send_message
from vkmax.shared.config import ClientConfig
from vkmax.shared.envelope import RpcEnvelope
from vkmax.shared.errors import MaxError
from vkmax.shared.log import configure_root_logging, get_logger
from vkmax.shared.opcodes import EVENT_OPCODES, Opcode
from vkmax.shared.utils import validate_phone_number, validate_sms_code

app = typer.Typer(help="VK MAX client CLI")
console = Console()
logger = get_logger(__name__)


def _load_config(config_path: Optional[Path]) -> ClientConfig:
    if config_path is not None:
        return ClientConfig.from_yaml(config_path)
    return ClientConfig.from_env()


def _run(coro: Awaitable[Any]) -> Any:
    try:
        return asyncio.run(coro)
    except MaxError as e:
        console.print(f"[red]{type(e).__name__}[/]: {e}")
        raise typer.Exit(code=1)


async def _with_session(
    config: ClientConfig,
    phone: Optional[str],
    action: Callable[[MaxClient], Awaitable[Any]],
) -> Any:
    """Connect, resume the stored session for ``phone`` and run ``action``."""
    token = SessionStore().get_token(phone)
    if not token:
        console.print("No stored session. Run [bold]vkmax login PHONE[/] first.")
        raise typer.Exit(code=1)

    client = MaxClient(config)
    await client.connect()
    try:
        await client.login_by_token(token)
        return await action(client)
    finally:
        if client.is_connected:
            await client.disconnect()


@app.command()
def login(
    phone: str = typer.Argument(..., help="Phone number, e.g. +79001234567"),
    config: Optional[Path] = typer.Option(None, help="YAML client config"),
):
    """Sign in with an SMS code and store the session token."""
    if not validate_phone_number(phone):
        console.print("[red]Invalid phone number[/]")
        raise typer.Exit(code=1)

    async def main_loop() -> None:
        client = MaxClient(_load_config(config))
        await client.connect()
        try:
            sms_token = await client.send_code(phone)
            code = (await aioconsole.ainput("Enter verification code: ")).strip()
            if not validate_sms_code(code):
                console.print("[red]Verification code must be 4-6 digits[/]")
                return
            await client.sign_in(sms_token, code)
            if client.state.token:
                SessionStore().set_token(phone, client.state.token)
                console.print(f"[bold green]Logged in[/] as {phone}; session saved")
            else:
                console.print("[yellow]Logged in, but the server returned no session token[/]")
        finally:
            if client.is_connected:
                await client.disconnect()

    _run(main_loop())


@app.command()
def logout(phone: str = typer.Argument(..., help="Phone number whose token to forget")):
    """Forget the stored session token."""
    SessionStore().forget(phone)
    console.print(f"Forgot session for {phone}")


@app.command()
def send(
    chat_id: int = typer.Argument(..., help="Target chat id"),
    text: str = typer.Argument(..., help="Message text"),
    phone: Optional[str] = typer.Option(None, help="Account to use; defaults to the last login"),
    config: Optional[Path] = typer.Option(None, help="YAML client config"),
):
    """Send a text message."""

    async def action(client: MaxClient) -> RpcEnvelope:
        return await send_message(client, chat_id, text)

    response = _run(_with_session(_load_config(config), phone, action))
    error = response.payload_error
    if error:
        console.print(f"[red]Server error[/]: {error}")
        raise typer.Exit(code=1)
    console.print(f"[dim]sent (seq {response.seq})[/]")


@app.command()
def upload(
    chat_id: int = typer.Argument(..., help="Target chat id"),
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to send"),
    text: str = typer.Option("", help="Caption (photos and videos only)"),
    phone: Optional[str] = typer.Option(None, help="Account to use; defaults to the last login"),
    config: Optional[Path] = typer.Option(None, help="YAML client config"),
):
    """Upload a photo, video or file and send it to a chat."""
    data = path.read_bytes()
    kind = media.media_type_from_mime(media.guess_mime_type(path.name))

    async def action(client: MaxClient) -> RpcEnvelope:
        if kind == "image":
            return await client.upload_and_send_photo(chat_id, data, path.name, text)
        if kind == "video":
            return await client.upload_and_send_video(chat_id, data, path.name, text)
        return await client.upload_and_send_file(chat_id, data, path.name)

    response = _run(_with_session(_load_config(config), phone, action))
    console.print(f"[bold green]Sent[/] {path.name} ({len(data)} bytes, seq {response.seq})")


@app.command()
def listen(
    phone: Optional[str] = typer.Option(None, help="Account to use; defaults to the last login"),
    raw: bool = typer.Option(False, help="Print full JSON of every event"),
    config: Optional[Path] = typer.Option(None, help="YAML client config"),
):
    """Print server-pushed events until interrupted."""

    def on_event(client: MaxClient, frame: RpcEnvelope) -> None:
        if raw:
            console.print(json.dumps(frame.to_dict(), ensure_ascii=False, indent=2))
            return
        if frame.opcode not in EVENT_OPCODES:
            console.print(f"[dim]unhandled frame opcode={frame.opcode}[/]")
            return
        payload = frame.payload if isinstance(frame.payload, dict) else {}
        if frame.opcode == Opcode.MESSAGE_RECEIVED:
            message = payload.get("message")
            message = message if isinstance(message, dict) else {}
            sender = message.get("sender", "?")
            console.print(f"[bold cyan]{payload.get('chatId')}[/] {sender}: {message.get('text', '')}")
        else:
            console.print(f"[dim]{Opcode(frame.opcode).name}[/] {json.dumps(payload, ensure_ascii=False)}")

    async def action(client: MaxClient) -> None:
        client.set_callback(on_event)
        console.print("[bold green]Listening[/]; Ctrl+C to stop")
        closed = client.events.expect("close")
        await closed

    try:
        _run(_with_session(_load_config(config), phone, action))
    except KeyboardInterrupt:
        console.print("Stopped")


@app.callback()
def _setup(log_level: str = typer.Option("WARNING", help="Root log level")):
    configure_root_logging(log_level)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
