"""CLI entry point for shellkeeper."""

from __future__ import annotations

import asyncio
import json
import logging
import shlex

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shellkeeper.config import ShellKeeperConfig
from shellkeeper.errors import CommandFailed, ShellKeeperError
from shellkeeper.service import ShellKeeper
from shellkeeper.tool.builtin import build_registry

app = typer.Typer(
    name="shellkeeper",
    help="Persistent, stateful shell sessions with synchronous command results.",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

_REPL_HELP = """\
Commands are sent to the current session. Lines starting with ':' are local:
  :sessions                   list sessions
  :new ID [SHELL]             create a session and switch to it
  :use ID                     switch to another session (created on first command)
  :close [ID]                 close a session (default: current)
  :buffer [raw]               show the current session's buffer
  :upload LOCAL REMOTE        upload a file through the session
  :download REMOTE LOCAL      download a file through the session
  :help                       show this help
  :quit                       close all sessions and exit"""


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(config_file: str | None, shell: str | None) -> ShellKeeperConfig:
    config = ShellKeeperConfig.load(config_file)
    if shell:
        config.shell.shell = shell
    return config


@app.command()
def tools(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Path to config JSON file."
    ),
) -> None:
    """Print the tool declarations as JSON."""
    keeper = ShellKeeper(ShellKeeperConfig.load(config_file))
    registry = build_registry(keeper)
    typer.echo(json.dumps(registry.get_specs(), indent=2))


@app.command()
def run(
    command: str = typer.Argument(help="Command to execute."),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Timeout in seconds."
    ),
    shell: str | None = typer.Option(None, "--shell", help="Shell binary to launch."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Path to config JSON file."
    ),
) -> None:
    """Run one command in a fresh session and print its output."""
    setup_logging(verbose)
    config = _load_config(config_file, shell)
    exit_code = asyncio.run(_run_once(config, command, timeout))
    raise typer.Exit(exit_code)


async def _run_once(config: ShellKeeperConfig, command: str, timeout: float | None) -> int:
    keeper = ShellKeeper(config)
    try:
        output = await keeper.execute(command, timeout=timeout)
    except CommandFailed as e:
        if e.output:
            typer.echo(e.output)
        err_console.print(f"[red]Exit code: {e.exit_code}[/red]")
        return e.exit_code
    except ShellKeeperError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1
    finally:
        await keeper.shutdown()

    if output:
        typer.echo(output)
    return 0


@app.command()
def repl(
    session_id: str = typer.Option("default", "--session", "-s", help="Initial session."),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Per-command timeout in seconds."
    ),
    shell: str | None = typer.Option(None, "--shell", help="Shell binary to launch."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Path to config JSON file."
    ),
) -> None:
    """Interactive loop over persistent sessions."""
    setup_logging(verbose)
    config = _load_config(config_file, shell)
    console.print(escape(_REPL_HELP))
    try:
        asyncio.run(_repl(ShellKeeper(config), session_id, timeout))
    except KeyboardInterrupt:
        pass


async def _repl(keeper: ShellKeeper, session_id: str, timeout: float | None) -> None:
    current = session_id
    try:
        while True:
            try:
                line = await asyncio.to_thread(
                    console.input, f"[bold]{escape(current)}[/bold]> "
                )
            except EOFError:
                break
            line = line.strip()
            if not line:
                continue
            if line.startswith(":"):
                try:
                    switched = await _meta(keeper, current, line)
                except ShellKeeperError as e:
                    err_console.print(f"[red]Error: {escape(str(e))}[/red]")
                    continue
                if switched is None:
                    break
                current = switched
                continue

            try:
                output = await keeper.execute(line, current, timeout)
            except CommandFailed as e:
                if e.output:
                    console.print(escape(e.output))
                err_console.print(f"[red]Exit code: {e.exit_code}[/red]")
                continue
            except ShellKeeperError as e:
                err_console.print(f"[red]Error: {escape(str(e))}[/red]")
                continue
            if output:
                console.print(escape(output))
    finally:
        await keeper.shutdown()


async def _meta(keeper: ShellKeeper, current: str, line: str) -> str | None:
    """Handle a ':' command. Returns the session to use next, None to quit."""
    parts = shlex.split(line[1:])
    if not parts:
        return current
    cmd, args = parts[0], parts[1:]

    if cmd in ("quit", "exit", "q"):
        return None
    if cmd == "help":
        console.print(escape(_REPL_HELP))
    elif cmd == "sessions":
        _print_sessions(keeper)
    elif cmd == "new" and args:
        await keeper.create_session(args[0], args[1] if len(args) > 1 else None)
        return args[0]
    elif cmd == "use" and args:
        return args[0]
    elif cmd == "close":
        await keeper.close_session(args[0] if args else current)
    elif cmd == "buffer":
        raw = bool(args) and args[0] == "raw"
        console.print(escape(keeper.get_raw_buffer(current, clean=not raw) or "(Empty buffer)"))
    elif cmd == "upload" and len(args) == 2:
        console.print(escape(str(await keeper.upload(args[0], args[1], current))))
    elif cmd == "download" and len(args) == 2:
        console.print(escape(str(await keeper.download(args[0], args[1], current))))
    else:
        err_console.print(f"Unknown command: {escape(line)} (try :help)")
    return current


def _print_sessions(keeper: ShellKeeper) -> None:
    sessions = keeper.list_sessions()
    if not sessions:
        console.print("No active sessions")
        return
    table = Table("Session", "Status", "Last command", "Uptime")
    for s in sessions:
        status = "[green]ready[/green]" if s["ready"] else "[yellow]busy[/yellow]"
        table.add_row(
            escape(s["id"]), status, escape(s["last_command"]), f"{s['uptime']}s"
        )
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
