import argparse
import asyncio
import dataclasses
import os
import subprocess
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import daemon
from .config import Config, parse_millis
from .constants import CONFIG_FILE, LOG_FILE
from .git_wrapper import find_repo_root
from .session import AutosaveSession

console = Console()

CONFIG_TEMPLATE = """\
# git-autosaver user-wide settings.
# Repositories may override any of these in autosaver.toml.

[core]
# file_pattern = "\\\\.md$"
# remote_name = "origin"

[debounce]
# debounce_ms = "1s"

[notify]
# desktop = true
"""

# (section, key, type, default, description)
CONFIG_REFERENCE = [
    ("core", "enabled", "bool", "true", "Admit saves when a session starts."),
    ("core", "file_pattern", "str", '"\\.md$"', "Regex matched against saved file names."),
    ("core", "remote_name", "str", '"origin"', "Remote rewritten by the push fallback."),
    ("pipeline", "git_add", "bool", "true", "Stage the saved file."),
    ("pipeline", "git_commit", "bool", "true", "Commit with the save timestamp."),
    ("pipeline", "git_push", "bool", "true", "Push after committing."),
    (
        "pipeline",
        "command_timeout",
        "int | str",
        '"60s"',
        "Deadline for a single git command; 0 disables (e.g., '30s', '2min').",
    ),
    (
        "pipeline",
        "publish_after_noop_commit",
        "bool",
        "false",
        "Push even when the commit found nothing new.",
    ),
    (
        "debounce",
        "debounce_ms",
        "int | str",
        "1000",
        "Quiet period before a save is processed (e.g., 500, '1.5s').",
    ),
    ("debounce", "per_path", "bool", "false", "Debounce each file separately."),
    ("notify", "silent", "bool", "false", "Suppress all messages but the log."),
    ("notify", "desktop", "bool", "false", "Send desktop notifications."),
    ("notify", "on_success", "bool", "false", "Announce successful pushes."),
    ("limits", "max_log_size", "int | str", '"5mb"', "Log size that triggers rotation."),
]

COMMAND_GROUPS = {
    "Saving": ("save", "listen"),
    "Configuration": ("config", "log"),
    "General": ("help",),
}


def open_config() -> None:
    """Opens the user-wide config file in $EDITOR, seeding it on first use."""
    if not CONFIG_FILE.exists():
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        CONFIG_FILE.write_text(CONFIG_TEMPLATE)

    default_editor = "open" if sys.platform == "darwin" else "nano"
    editor = os.environ.get("EDITOR") or default_editor
    console.print(f"Editing [cyan]{CONFIG_FILE}[/cyan] with {editor}")

    try:
        subprocess.run([editor, str(CONFIG_FILE)])
    except OSError as e:
        console.print(f"[bold red]ERROR:[/bold red] Cannot launch {editor}: {e}")


def show_config_reference() -> None:
    table = Table(title="git-autosaver settings", show_lines=True)
    for heading, style in (
        ("Section", "cyan"),
        ("Key", "green"),
        ("Type", "dim"),
        ("Default", "yellow"),
        ("Description", None),
    ):
        table.add_column(heading, style=style)

    previous = None
    for section, *row in CONFIG_REFERENCE:
        table.add_row(section if section != previous else "", *row)
        previous = section

    console.print(table)


def show_effective_config(config: Config) -> None:
    """Prints the merged configuration for the current directory."""
    table = Table(title="Effective Configuration")
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Value", style="yellow")

    for section in dataclasses.fields(config):
        values = getattr(config, section.name)
        for i, item in enumerate(dataclasses.fields(values)):
            table.add_row(
                section.name if i == 0 else "",
                item.name,
                repr(getattr(values, item.name)),
            )

    console.print(table)


def tail_log() -> None:
    """Streams the daemon log until interrupted."""
    if not LOG_FILE.exists():
        console.print(f"[dim]Nothing logged yet ({LOG_FILE} does not exist).[/dim]")
        return

    console.print(f"Following [bold cyan]{LOG_FILE}[/bold cyan], Ctrl+C to quit")
    try:
        subprocess.run(["tail", "-n", "200", "-F", str(LOG_FILE)])
    except KeyboardInterrupt:
        console.print("\nDone.", style="dim")


def save_file(path: str) -> None:
    """Commits and pushes one file immediately, exiting non-zero on failure.

    Args:
        path (str): The file to save.
    """
    target = Path(path).expanduser().resolve()
    if not target.is_file():
        console.print(f"[bold red]ERROR:[/bold red] No such file: {target}")
        sys.exit(1)

    config = Config.load(find_repo_root(target) or target.parent)
    config.debounce.debounce_ms = 0
    daemon.setup_logging(interactive=True, max_log_size=config.limits.max_log_size)
    session = AutosaveSession(config)

    with console.status(f"Saving {target.name}...", spinner="dots"):
        ok = asyncio.run(daemon.save_once(session, target))

    if not ok:
        if session.failed == 0:
            console.print(
                f"[bold yellow]SKIPPED:[/bold yellow] {target.name} is disabled, "
                "outside a git repository or does not match the file pattern."
            )
        sys.exit(1)
    console.print(f"[bold green]✔ Saved {target.name}.[/bold green]")


def listen(debounce: str | None, per_path: bool, verbose: bool) -> None:
    """Starts the stdin listener with optional command-line overrides."""
    config = Config.load(Path.cwd())
    if debounce is not None:
        try:
            config.debounce.debounce_ms = parse_millis(debounce)
        except ValueError as e:
            console.print(f"[bold red]ERROR:[/bold red] {e}")
            sys.exit(2)
    if per_path:
        config.debounce.per_path = True
    if verbose:
        daemon.logger.setLevel("DEBUG")
    daemon.main(config=config)


class AutosaverHelpFormatter(argparse.HelpFormatter):
    """Lists subcommands under the headings of COMMAND_GROUPS."""

    def _format_action(self, action: argparse.Action) -> str:
        if not isinstance(action, argparse._SubParsersAction):
            return super()._format_action(action)

        by_name = {a.dest: a for a in self._iter_indented_subactions(action)}
        parts = []
        for heading, names in COMMAND_GROUPS.items():
            members = [by_name[n] for n in names if n in by_name]
            if not members:
                continue
            parts.append(f"\n  {heading}:\n")
            self._indent()
            parts.extend(self._format_action(member) for member in members)
            self._dedent()
        return self._join_parts(parts)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="git-autosaver",
        usage=argparse.SUPPRESS,
        formatter_class=AutosaverHelpFormatter,
        add_help=False,
    )
    parser.add_argument(
        "-h",
        "--help",
        action="help",
        default=argparse.SUPPRESS,
        help=argparse.SUPPRESS,
    )

    subparsers = parser.add_subparsers(dest="command")

    save_parser = subparsers.add_parser(
        "save", help="Commit and push a file immediately"
    )
    save_parser.add_argument("path", help="Path to the saved file")

    listen_parser = subparsers.add_parser(
        "listen", help="Read save events from stdin (editor integration)"
    )
    listen_parser.add_argument(
        "--debounce", help="Quiet period before saving (e.g. 500, '2s')"
    )
    listen_parser.add_argument(
        "--per-path", action="store_true", help="Debounce each file separately"
    )
    listen_parser.add_argument(
        "--verbose", "-v", action="store_true", help="Log every git command"
    )

    config_parser = subparsers.add_parser(
        "config", help="Edit user-wide settings or inspect them"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="Describe every setting and its default",
    )
    config_parser.add_argument(
        "--show",
        action="store_true",
        help="Show the merged configuration for the current directory",
    )

    subparsers.add_parser("log", help="Follow the listener log")
    subparsers.add_parser("help", help="Show this help message")
    return parser


def main() -> None:
    """Dispatches the git-autosaver subcommands."""
    parser = build_parser()
    args = parser.parse_args()

    if args.command == "save":
        save_file(args.path)
        return
    elif args.command == "listen":
        listen(args.debounce, args.per_path, args.verbose)
        return
    elif args.command == "config":
        if args.list:
            show_config_reference()
        elif args.show:
            show_effective_config(Config.load(Path.cwd()))
        else:
            open_config()
        return
    elif args.command == "log":
        tail_log()
        return

    parser.print_help()


if __name__ == "__main__":
    main()
