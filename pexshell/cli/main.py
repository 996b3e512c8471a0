"""pexshell CLI.

Built-in commands manage users and the schema cache; every other command
is generated from the cached schema of the current user's target.

Usage:
    pexshell login                               Log in and cache the schema
    pexshell users                               List known users
    pexshell cache                               Refresh the schema cache
    pexshell configuration conference list       List conferences
    pexshell status worker_vm get 1              Get one object
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Coroutine, Optional

import click
import typer
from pydantic import SecretStr
from rich.console import Console

from pexshell import __version__
from pexshell.cli.commands import register_api_commands
from pexshell.cli.config import (
    PexShellConfig,
    UserConfig,
    UserSelection,
    load_config,
    save_config,
    select_user,
    touch_user,
)
from pexshell.cli.factory import Client, get_cache, get_client
from pexshell.cli.logging_config import configure_logging
from pexshell.cli.output import (
    format_cache_summary,
    format_page,
    format_record_line,
    format_records,
    format_users_table,
)
from pexshell.errors import ConfigurationError, PexShellError, format_error
from pexshell.models.invocation import CredentialKind, Credentials, Invocation
from pexshell.models.schema import Operation
from pexshell.services.command_synthesizer import synthesize
from pexshell.services.secret_store import KeyringSecretStore
from pexshell.services.transport import normalize_address

logger = logging.getLogger(__name__)

EXIT_CODE_INTERRUPTED = 130
MISSING_CACHE_MESSAGE = "schema cache is missing - run: pexshell cache"

app = typer.Typer(
    name="pexshell",
    help="Command line client for the management API, generated from its schema.",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to config.yaml"
    ),
):
    """pexshell: schema-driven management API client."""
    global _config_path
    _config_path = config


def _load() -> PexShellConfig:
    try:
        return load_config(config_path=_config_path)
    except ConfigurationError as e:
        err_console.print(format_error(e), style="red", markup=False)
        raise typer.Exit(1)


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run a coroutine and render pexshell errors."""
    try:
        return asyncio.run(coro)
    except PexShellError as e:
        err_console.print(format_error(e), style="red", markup=False)
        raise typer.Exit(1)


async def _open_session(client: Client, selection: UserSelection) -> None:
    await client.sessions.login(
        selection.override,
        address=selection.address,
        username=selection.username,
        verify=False,
    )


# --- Version ---


@app.command()
def version():
    """Show pexshell version."""
    console.print(f"[bold]pexshell[/bold] v{__version__}")


# --- Users ---


@app.command()
def login(
    address: Optional[str] = typer.Option(None, "--address", "-a", help="Management node address"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Username or OAuth2 client id"),
    oauth2: bool = typer.Option(False, "--oauth2", help="Use OAuth2 client credentials"),
    key_file: Optional[Path] = typer.Option(
        None, "--key-file", help="PEM private key for OAuth2 (prompted if omitted)"
    ),
    skip_cache: bool = typer.Option(False, "--no-cache", help="Do not refresh the schema cache"),
):
    """Log in, remember the user and cache the target's schema."""
    cfg = _load()
    address = normalize_address(address or typer.prompt("Address"))
    username = username or typer.prompt("Client ID" if oauth2 else "Username")
    kind = CredentialKind.OAUTH2 if oauth2 else CredentialKind.BASIC
    if oauth2 and key_file is not None:
        secret = key_file.read_text(encoding="utf-8")
    else:
        secret = typer.prompt("Private key (PEM)" if oauth2 else "Password", hide_input=True)

    credentials = Credentials(
        address=address, kind=kind, username=username, secret=SecretStr(secret)
    )
    client = get_client(cfg, address)

    async def _login():
        async with client:
            await client.sessions.login(credentials)
            if not skip_cache:
                cached = await client.cache.refresh(client.address)
                print(format_cache_summary(cached), end="")

    _run(_login())
    user = cfg.upsert_user(UserConfig(address=address, username=username, kind=kind))
    touch_user(cfg, UserSelection(address=user.address, username=user.username, kind=kind))
    save_config(cfg, _config_path)
    console.print(f"[green]Logged in as {user.ident}[/green]")


@app.command()
def logout(
    address: Optional[str] = typer.Option(None, "--address", "-a", help="Address of the user to forget"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Username to forget"),
):
    """Forget a user and erase their stored secret."""
    cfg = _load()
    if address and username:
        user = cfg.find_user(normalize_address(address), username)
    else:
        user = cfg.current_user
    if user is None:
        err_console.print("[yellow]No matching user.[/yellow]")
        raise typer.Exit(1)

    KeyringSecretStore().erase(user.address, user.username)
    cfg.remove_user(user.address, user.username)
    save_config(cfg, _config_path)
    console.print(f"Logged out {user.ident}")


@app.command()
def users(
    select: Optional[str] = typer.Option(
        None, "--select", help="Make <username>@<address> the current user"
    ),
):
    """List known users, or switch the current one."""
    cfg = _load()
    if select:
        username, _, address = select.rpartition("@")
        user = cfg.find_user(normalize_address(address), username) if username else None
        if user is None:
            err_console.print(f"[red]Unknown user: {select}[/red]")
            raise typer.Exit(1)
        cfg.upsert_user(user)
        save_config(cfg, _config_path)
    print(format_users_table(cfg.users), end="")


# --- Cache ---


@app.command()
def cache(
    clear: bool = typer.Option(False, "--clear", help="Delete every cached schema"),
):
    """Refresh the schema cache for the current user's target."""
    cfg = _load()
    if clear:
        removed = get_cache().clear()
        console.print(f"Removed {removed} cached schema(s).")
        return

    try:
        selection = select_user(cfg)
    except ConfigurationError as e:
        err_console.print(format_error(e), style="red", markup=False)
        raise typer.Exit(1)
    if selection is None:
        err_console.print("[yellow]No user. Log in with: pexshell login[/yellow]")
        raise typer.Exit(1)

    client = get_client(cfg, selection.address)

    async def _refresh():
        async with client:
            await _open_session(client, selection)
            return await client.cache.refresh(client.address)

    cached = _run(_refresh())
    print(format_cache_summary(cached), end="")


# --- Generated API commands ---


def _execute(cfg: PexShellConfig, selection: UserSelection, schema, invocation: Invocation,
             stream: bool, max_records: int | None) -> None:
    client = get_client(cfg, selection.address)

    async def _go():
        async with client:
            client.pipeline.schema = schema
            await _open_session(client, selection)
            if invocation.operation is Operation.LIST:
                if stream:
                    async for record in client.pipeline.paginate(invocation, max_records):
                        print(format_record_line(record), flush=True)
                    return
                records = [r async for r in client.pipeline.paginate(invocation, max_records)]
                print(format_records(records))
                return
            page = await client.pipeline.execute(invocation)
            text = format_page(page, single=invocation.operation is not Operation.DELETE)
            if text is not None:
                print(text)

    _run(_go())
    if selection.override is None:
        touch_user(cfg, selection)
        save_config(cfg, _config_path)


def _attach_api_commands(root: click.Group, cfg: PexShellConfig) -> None:
    try:
        selection = select_user(cfg)
    except ConfigurationError as e:
        logger.warning("Not loading API commands: %s", e)
        return
    if selection is None:
        return
    cached = get_cache().read_persisted(selection.address)
    if cached is None:
        err_console.print(f"[yellow]warning: {MISSING_CACHE_MESSAGE}[/yellow]")
        return
    tree = synthesize(cached.model)

    def handler(invocation: Invocation, stream: bool, max_records: int | None) -> None:
        _execute(cfg, selection, cached.model, invocation, stream, max_records)

    register_api_commands(root, tree, handler)


def _config_arg(argv: list[str]) -> str | None:
    for index, arg in enumerate(argv):
        if arg == "--config" and index + 1 < len(argv):
            return argv[index + 1]
        if arg.startswith("--config="):
            return arg.split("=", 1)[1]
    return None


def build_cli(argv: list[str]) -> click.Group:
    """Build the click command, including commands for the cached schema."""
    root = typer.main.get_command(app)
    cfg = load_config(config_path=_config_arg(argv))
    configure_logging(cfg.log)
    _attach_api_commands(root, cfg)
    return root


def run(argv: list[str] | None = None) -> int:
    """Console entry point. Returns the process exit code."""
    argv = list(sys.argv[1:] if argv is None else argv)
    try:
        command = build_cli(argv)
        # Without standalone mode click returns the exit code of typer.Exit.
        result = command.main(args=argv, prog_name="pexshell", standalone_mode=False)
    except KeyboardInterrupt:
        err_console.print("interrupted")
        return EXIT_CODE_INTERRUPTED
    except click.exceptions.Abort:
        return EXIT_CODE_INTERRUPTED
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Exit as e:
        return e.exit_code
    except PexShellError as e:
        err_console.print(format_error(e), style="red", markup=False)
        return 1
    return result if isinstance(result, int) else 0


if __name__ == "__main__":
    sys.exit(run())
