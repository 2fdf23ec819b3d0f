"""CLI application for freshen."""

import asyncio
import json

import typer
from rich.console import Console
from rich.table import Table

from core.check import EXIT_ERROR, CheckResult, collect_packages, run_check
from core.errors import ConfigError
from core.log import setup_logging
from core.options import load_config

console = Console()

DIFF_STYLES = {"major": "red", "minor": "yellow", "patch": "green"}


def parse_package_modes(values: list[str]) -> dict[str, str]:
    """``name=mode`` pairs -> dict, keeping declaration order."""
    modes = {}
    for value in values:
        name, sep, mode = value.rpartition("=")
        if not sep or not name:
            raise ConfigError(f"Invalid --package-mode value {value!r}, expected name=mode")
        modes[name] = mode
    return modes


def format_json_output(result: CheckResult) -> str:
    """Format JSON output."""
    return json.dumps(result.to_dict(), indent=2)


def render_table(result: CheckResult) -> None:
    if result.fatal_error:
        console.print(f"Error: {result.fatal_error}", style="red", markup=False)
        return
    if result.no_packages_found:
        console.print("No packages found")
        return
    if not result.updates and not result.errors:
        console.print("All dependencies are up to date", style="green")

    for package, changes in result.updates.items():
        table = Table(title=package, title_justify="left", show_edge=False)
        table.add_column("name")
        table.add_column("source", style="dim")
        table.add_column("current")
        table.add_column("target")
        table.add_column("diff")
        for change in changes:
            table.add_row(
                change.name,
                change.source_field,
                change.current_version_spec,
                change.target_version_spec,
                change.diff_class,
                style=DIFF_STYLES.get(change.diff_class),
            )
        console.print(table)

    for error in result.errors:
        console.print(f"{error.package}: {error.name}: {error.message}", style="red", markup=False)

    console.print(
        f"{result.total} updates ({result.major} major, {result.minor} minor, {result.patch} patch)"
    )
    if result.did_write or result.planned:
        console.print(
            f"planned {result.planned}, applied {result.applied}, reverted {result.reverted}"
        )
    for message in result.write_errors:
        console.print(f"Write failed: {message}", style="red", markup=False)


app = typer.Typer(
    name="freshen",
    help="freshen - Check and update npm dependency ranges",
    add_completion=False,
)


@app.command()
def check(
    paths: list[str] = typer.Argument(None, help="Manifest files or directories (default: current directory)"),
    cwd: str = typer.Option(".", "--cwd", "-C", help="Workspace root used for catalogs and config"),
    mode: str | None = typer.Option(None, "--mode", "-m", help="Range mode: default, major, minor, patch, latest, newest, next"),
    package_mode: list[str] = typer.Option([], "--package-mode", help="Per-package mode as name=mode (repeatable)"),
    write: bool | None = typer.Option(None, "--write", "-w", help="Write updates back to the files"),
    include: list[str] = typer.Option([], "--include", "-i", help="Only check matching names (repeatable)"),
    exclude: list[str] = typer.Option([], "--exclude", "-x", help="Skip matching names (repeatable)"),
    include_locked: bool | None = typer.Option(None, "--include-locked", help="Also update exact versions"),
    include_workspace: bool | None = typer.Option(None, "--include-workspace", help="Also update workspace: ranges"),
    peer: bool | None = typer.Option(None, "--peer", help="Include peerDependencies"),
    concurrency: int | None = typer.Option(None, "--concurrency", help="Maximum simultaneous registry requests"),
    timeout: float | None = typer.Option(None, "--timeout", help="Per-request timeout in seconds"),
    retries: int | None = typer.Option(None, "--retries", help="Retries after network failures"),
    cooldown: int | None = typer.Option(None, "--cooldown", help="Ignore versions younger than N days"),
    refresh_cache: bool | None = typer.Option(None, "--refresh-cache", help="Bypass cached registry data"),
    force: bool | None = typer.Option(None, "--force", "-f", help="Keep changes that are already current"),
    verify_command: str | None = typer.Option(None, "--verify-command", "-V", help="Command that must pass for each update"),
    execute: str | None = typer.Option(None, "--execute", "-e", help="Command to run after writing"),
    install: bool | None = typer.Option(None, "--install", help="Run <pm> install after writing"),
    update: bool | None = typer.Option(None, "--update", help="Run <pm> update after writing"),
    global_packages: bool | None = typer.Option(None, "--global", "-g", help="Check globally installed packages"),
    global_all: bool | None = typer.Option(None, "--global-all", help="Check global packages of npm, pnpm and bun"),
    global_manager: str | None = typer.Option(None, "--global-manager", help="Package manager for --global"),
    fail_on_outdated: bool | None = typer.Option(None, "--fail-on-outdated", help="Exit 1 when updates exist and nothing was written"),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table or json"),
    loglevel: str | None = typer.Option(None, "--loglevel", help="silent, error, warn, info or debug"),
) -> None:
    """Check dependency ranges against the registry and optionally write updates."""

    try:
        overrides = {
            "mode": mode,
            "package_mode": parse_package_modes(package_mode) or None,
            "write": write,
            "include": include or None,
            "exclude": exclude or None,
            "include_locked": include_locked,
            "include_workspace": include_workspace,
            "peer": peer,
            "concurrency": concurrency,
            "timeout": timeout,
            "retries": retries,
            "cooldown": cooldown,
            "refresh_cache": refresh_cache,
            "force": force,
            "verify_command": verify_command,
            "execute": execute,
            "install": install,
            "update": update,
            "global_packages": global_packages,
            "global_all": global_all,
            "global_manager": global_manager,
            "fail_on_outdated": fail_on_outdated,
            "loglevel": loglevel,
        }
        options = load_config(cwd, overrides)
        setup_logging("error" if output == "json" and options.loglevel == "info" else options.loglevel)

        packages = collect_packages(paths or [], options)
        result = asyncio.run(run_check(packages, options))

        if output == "json":
            console.print_json(format_json_output(result))
        else:
            render_table(result)

        raise typer.Exit(result.exit_code)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(EXIT_ERROR)


if __name__ == "__main__":
    app()
