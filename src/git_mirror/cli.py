import argparse
import sys
from dataclasses import fields
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import daemon
from .config import Config
from .engine import SyncEngine
from .server import get_version
from .status import SyncStatus

console = Console()


def render_status(status: SyncStatus) -> Table:
    """Builds a table view of a status snapshot."""
    table = Table(title="Sync Status", show_header=False, box=None)
    table.add_column("Key", style="bold")
    table.add_column("Value")

    health = "[green]healthy[/green]" if status.healthy else "[red]unhealthy[/red]"
    table.add_row("Health", health)
    table.add_row("Repository", status.repo_url)
    table.add_row("Branch", status.branch)
    table.add_row("Target", status.target_path)
    table.add_row("Revision", status.last_revision or "-")
    table.add_row(
        "Last Sync",
        status.last_sync_time.strftime("%Y-%m-%d %H:%M:%S %Z")
        if status.last_sync_time
        else "never",
    )
    table.add_row("Successes", str(status.success_count))
    table.add_row("Errors", str(status.error_count))
    if status.last_error:
        table.add_row("Last Error", f"[red]{status.last_error}[/red]")
    return table


def run_once(config_file: Path | None) -> int:
    """Runs a single cycle in the foreground and prints the resulting status."""
    config = daemon.load_config(config_file)
    daemon.setup_logging(config.logging, interactive=True)

    engine = SyncEngine(config.sync)
    try:
        with console.status(
            f"[bold blue]Syncing {config.sync.repo_url}...[/bold blue]",
            spinner="dots",
        ):
            result = engine.run_cycle()
        console.print(render_status(engine.snapshot()))
    finally:
        engine.close()

    if result.success:
        console.print(
            f"[bold green]SUCCESS:[/bold green] Mirrored {result.revision} "
            f"into {config.sync.target_path}."
        )
        return 0
    console.print(f"[bold red]SYNC ERROR ({result.phase}):[/bold red] {result.error}")
    return 1


def show_config(config_file: Path | None) -> None:
    """Prints the effective configuration after file and environment merging."""
    config = Config.load(config_file)

    table = Table(title="Effective Configuration")
    table.add_column("Section", style="cyan")
    table.add_column("Key", style="bold")
    table.add_column("Value")

    for section in fields(config):
        values = getattr(config, section.name)
        for i, item in enumerate(fields(values)):
            table.add_row(
                section.name if i == 0 else "",
                item.name,
                repr(getattr(values, item.name)),
            )

    console.print(table)


def show_config_reference() -> None:
    """Displays the available settings and the variables that override them."""
    table = Table(title="Configuration Reference")
    table.add_column("Section", style="cyan")
    table.add_column("Key", style="bold", no_wrap=True)
    table.add_column("Env", style="magenta", no_wrap=True)
    table.add_column("Default", style="green")
    table.add_column("Description")

    table.add_row(
        "sync", "repo_url", "GIT_REPO_URL", "(required)", "Remote repository location."
    )
    table.add_row("", "branch", "GIT_BRANCH", '"main"', "Branch to track.")
    table.add_row(
        "",
        "source_path",
        "GIT_SOURCE_PATH",
        '"/"',
        "Subtree of the repository to mirror.",
    )
    table.add_row(
        "",
        "target_path",
        "TARGET_PATH",
        '"/data"',
        "Where files are written. Files deleted upstream are NOT removed here.",
    )
    table.add_row(
        "",
        "schedule",
        "SYNC_INTERVAL",
        '"5m"',
        "Time between cycles ('30s', '5m', 300, '@every 1h' or '*/5 * * * *').",
    )
    table.add_row(
        "", "timeout", "SYNC_TIMEOUT", '"5m"', "Upper bound for one whole cycle."
    )
    table.add_row("", "once", "SYNC_ONCE", "false", "Run one cycle and exit.")
    table.add_row(
        "server", "host", "HOST", '"0.0.0.0"', "Status server bind address."
    )
    table.add_row("", "port", "PORT", "8080", "Status server port.")
    table.add_row(
        "", "enabled", "", "true", "Serve /healthz, /readyz, /metrics, /version."
    )
    table.add_row("logging", "level", "LOG_LEVEL", '"INFO"', "Log level.")
    table.add_row("", "file", "LOG_FILE", "(none)", "Optional rotating log file.")
    table.add_row(
        "", "max_log_size", "", '"5mb"', "Log file size before rotation (e.g. '5mb')."
    )

    console.print(table)


def main() -> None:
    """Main entry point for the Git Mirror CLI."""
    parser = argparse.ArgumentParser(
        prog="git-mirror",
        description=(
            "Mirror a subtree of a remote git branch onto a local directory. "
            "The mirror is additive: files removed upstream are left in place."
        ),
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a TOML config file (default: ~/.config/git-mirror/config.toml)",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Run the sync service (default)")
    subparsers.add_parser("once", help="Run a single sync cycle and exit")
    config_parser = subparsers.add_parser(
        "config", help="Show the effective configuration"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )
    subparsers.add_parser("version", help="Show the installed version")

    args = parser.parse_args()

    if args.command == "once":
        sys.exit(run_once(args.config))
    elif args.command == "config":
        if args.list:
            show_config_reference()
        else:
            show_config(args.config)
        return
    elif args.command == "version":
        console.print(f"git-mirror {get_version()}")
        return

    # Default Action
    sys.exit(daemon.run(daemon.load_config(args.config)))


if __name__ == "__main__":
    main()
