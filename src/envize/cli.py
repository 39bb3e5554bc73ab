"""Command-line interface for envize.

Commands that change the environment (use, add, remove, reset, refresh)
print shell text with ``--emit-shell``; the installed shell wrapper
evaluates it and then calls the command again with ``--emit-human`` to
show a confirmation on stderr.
"""

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from typing import NoReturn

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .exceptions import EnvizeError
from .exceptions import ProfileNotFoundError
from .exceptions import UnsupportedShellError
from .models import EnvizePaths
from .models import ProfileMetadata
from .models import Scope
from .models import Shell
from .models import ShellChange
from .session import EnvSession
from .settings import SettingsManager
from .shell import ShellGenerator
from .utils import default_paths
from .utils import detect_shell
from .utils import mask_value
from .utils import shell_rc_path

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

SHELL_CHOICES = click.Choice([shell.value for shell in Shell if shell is not Shell.UNKNOWN])


@dataclass
class CliContext:
    """Objects shared by every command."""

    paths: EnvizePaths
    settings: SettingsManager
    json_mode: bool = False
    verbose: bool = False

    def shell(self, override: str | None = None) -> Shell:
        if override:
            return Shell.from_name(override)
        return self.settings.shell() or detect_shell()

    def session(self, shell: str | None = None) -> EnvSession:
        return EnvSession.from_paths(self.paths, shell=self.shell(shell))


def fail(message: str, code: int = 1) -> NoReturn:
    err_console.print(f"[red]Error: {escape(message)}[/red]")
    sys.exit(code)


def emit_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


def split_csv(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def emit_options(func):
    """Add --emit-shell / --emit-human to a command."""
    func = click.option("--emit-human", is_flag=True, help="Print a confirmation of the current state to stderr")(func)
    func = click.option("--emit-shell", is_flag=True, help="Print shell commands for eval")(func)
    return func


@click.group()
@click.version_option(version=__version__, prog_name="envize")
@click.option("--json", "json_mode", is_flag=True, help="Output in JSON format")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="ENVIZE_HOME",
    help="Global envize directory (default: ~/.envize)",
)
@click.pass_context
def cli(ctx: click.Context, json_mode: bool, verbose: bool, home: Path | None) -> None:
    """envize - switch environment variables using composable profiles."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    paths = default_paths(home=home)
    ctx.obj = CliContext(
        paths=paths,
        settings=SettingsManager(paths.user_settings, paths.local_settings),
        json_mode=json_mode,
        verbose=verbose,
    )


# ===== Environment commands =====


def run_change(obj: CliContext, action: str, emit_shell: bool, emit_human: bool, operation) -> None:
    """Shared flow for commands that change the shell environment."""
    session = obj.session()

    if emit_human:
        print_summary(action, session)
        return

    try:
        change: ShellChange = operation(session)
    except EnvizeError as e:
        if emit_shell:
            sys.exit(1)
        fail(str(e))

    if emit_shell:
        click.echo(change.script)
        return

    if obj.json_mode:
        emit_json(change.to_dict())
        return

    print_change(change)
    if change.changed:
        console.print()
        console.print("[yellow]Note: variables only take effect through the shell wrapper.[/yellow]")
        console.print('[dim]Run "envize install" if you haven\'t already.[/dim]')


def print_change(change: ShellChange) -> None:
    if not change.profiles and change.action in ("add", "remove"):
        message = "already active" if change.action == "add" else "not active"
        console.print(f"[dim]The specified profiles are {message}.[/dim]")
        return
    if not change.profiles:
        console.print(f"[dim]No active profiles to {change.action}.[/dim]")
        return

    verb = {"use": "Activated", "add": "Added", "remove": "Removed", "reset": "Reset", "refresh": "Refreshed"}
    console.print(f"[green]✓[/green] [bold]{verb[change.action]}: {escape(', '.join(change.profiles))}[/bold]")
    if change.action in ("add", "remove"):
        active = ", ".join(change.active_profiles) or "none"
        console.print(f"[dim]  Active profiles: {escape(active)}[/dim]")
    console.print(f"[dim]  {len(change.to_set)} variable(s) set, {len(change.to_unset)} unset[/dim]")
    print_conflicts(change.conflicts)


def print_conflicts(conflicts, target: Console = console) -> None:
    if not conflicts:
        return
    target.print()
    target.print("[yellow]⚠ Conflicts (last profile wins):[/yellow]")
    for conflict in conflicts:
        target.print(f"[yellow]  {conflict.variable}: {escape(' → '.join(conflict.profiles))}[/yellow]")


def print_summary(action: str, session: EnvSession) -> None:
    """Confirmation shown by the shell wrapper after it evaluated the change."""
    state = session.status()
    if action == "reset":
        err_console.print("[green]✓[/green] [bold]Environment reset[/bold]")
        return
    if not state.active_profiles:
        err_console.print("[dim]No active profiles[/dim]")
        return

    err_console.print(f"[green]✓[/green] [bold]Active profiles: {escape(', '.join(state.active_profiles))}[/bold]")
    err_console.print(f"[dim]  {len(state.variables)} variable(s) managed by envize[/dim]")
    if action in ("use", "refresh"):
        try:
            print_conflicts(session.resolver.resolve(state.active_profiles).conflicts, err_console)
        except ProfileNotFoundError as e:
            logger.debug(f"Skipping conflict summary: {e}")


@cli.command()
@click.argument("profiles", nargs=-1, required=True)
@click.option("--persist", is_flag=True, help="Also apply in new shell sessions")
@emit_options
@click.pass_obj
def use(obj: CliContext, profiles: tuple[str, ...], persist: bool, emit_shell: bool, emit_human: bool) -> None:
    """Activate PROFILES, replacing the active set."""
    run_change(obj, "use", emit_shell, emit_human, lambda s: s.use(list(profiles), persist=persist))


@cli.command()
@click.argument("profiles", nargs=-1, required=True)
@click.option("--persist", is_flag=True, help="Also apply in new shell sessions")
@emit_options
@click.pass_obj
def add(obj: CliContext, profiles: tuple[str, ...], persist: bool, emit_shell: bool, emit_human: bool) -> None:
    """Add PROFILES to the active set."""
    run_change(obj, "add", emit_shell, emit_human, lambda s: s.add(list(profiles), persist=persist))


@cli.command()
@click.argument("profiles", nargs=-1, required=True)
@click.option("--persist", is_flag=True, help="Also remove from new shell sessions")
@emit_options
@click.pass_obj
def remove(obj: CliContext, profiles: tuple[str, ...], persist: bool, emit_shell: bool, emit_human: bool) -> None:
    """Remove PROFILES from the active set."""
    run_change(obj, "remove", emit_shell, emit_human, lambda s: s.remove(list(profiles), persist=persist))


@cli.command()
@click.option("--persist", is_flag=True, help="Also clear persisted variables")
@emit_options
@click.pass_obj
def reset(obj: CliContext, persist: bool, emit_shell: bool, emit_human: bool) -> None:
    """Restore the shell to its state before envize."""
    run_change(obj, "reset", emit_shell, emit_human, lambda s: s.reset(persist=persist))


@cli.command()
@emit_options
@click.pass_obj
def refresh(obj: CliContext, emit_shell: bool, emit_human: bool) -> None:
    """Re-apply the active profiles with their latest values."""
    run_change(obj, "refresh", emit_shell, emit_human, lambda s: s.refresh())


# ===== Inspection =====


@cli.command()
@click.option("--reveal", is_flag=True, help="Show full values")
@click.pass_obj
def status(obj: CliContext, reveal: bool) -> None:
    """Show active profiles and the variables they set."""
    state = obj.session().status()
    reveal_chars = obj.settings.reveal_chars()

    def shown(value: str) -> str:
        return value if reveal else mask_value(value, reveal_chars)

    if obj.json_mode:
        emit_json(
            {
                "active_profiles": state.active_profiles,
                "variables": {
                    key: {"value": shown(var.value), "source": var.source} for key, var in state.variables.items()
                },
                "applied_at": state.applied_at if state.active_profiles else None,
            }
        )
        return

    if not state.active_profiles:
        console.print("[dim]No active profiles[/dim]")
        return

    console.print(f"[bold]Active profiles:[/bold] {escape(', '.join(state.active_profiles))}")
    table = Table(show_header=True)
    table.add_column("Variable", style="cyan")
    table.add_column("Value")
    table.add_column("Source", style="green")
    for key in sorted(state.variables):
        var = state.variables[key]
        table.add_row(key, escape(shown(var.value)), escape(var.source))
    console.print(table)
    console.print(f"[dim]Applied at {state.applied_at}[/dim]")


@cli.command()
@click.argument("variable")
@click.option("--reveal", is_flag=True, help="Show the full value")
@click.pass_obj
def which(obj: CliContext, variable: str, reveal: bool) -> None:
    """Show which profile set VARIABLE."""
    var = obj.session().which(variable)
    value = None
    if var is not None:
        value = var.value if reveal else mask_value(var.value, obj.settings.reveal_chars())

    if obj.json_mode:
        data: dict[str, Any] = {"variable": variable, "found": var is not None}
        if var is not None:
            data.update(value=value, source=var.source)
        emit_json(data)
        return

    if var is None:
        console.print(f"[dim]{escape(variable)} is not set by envize[/dim]")
        return
    console.print(f"[cyan]{escape(variable)}[/cyan]={escape(value)} [dim](from {escape(var.source)})[/dim]")


@cli.command()
@click.pass_obj
def explain(obj: CliContext) -> None:
    """Describe the current state in plain text (e.g. for LLM context)."""
    text = obj.session().explain(obj.settings.reveal_chars())
    if obj.json_mode:
        emit_json({"explain": text})
    else:
        click.echo(text)


# ===== Profile management =====


@cli.command(name="ls")
@click.option("--long", "-l", "long_format", is_flag=True, help="Show descriptions and tags")
@click.pass_obj
def list_profiles(obj: CliContext, long_format: bool) -> None:
    """List available profiles (global and local)."""
    profiles = obj.session().repository.list_profiles()

    if obj.json_mode:
        emit_json([profile.to_dict() for profile in profiles])
        return

    if not profiles:
        console.print("[dim]No profiles found. Create one with: envize create <name>[/dim]")
        return

    table = Table(show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Location")
    table.add_column("Vars", justify="right")
    if long_format:
        table.add_column("Description")
        table.add_column("Tags", style="magenta")
    for profile in profiles:
        row = [escape(profile.name), profile.location.value, str(profile.variable_count)]
        if long_format:
            row += [escape(profile.description), escape(", ".join(profile.tags))]
        table.add_row(*row)
    console.print(table)


@cli.command()
@click.argument("name")
@click.option("--reveal", is_flag=True, help="Show full values")
@click.pass_obj
def show(obj: CliContext, name: str, reveal: bool) -> None:
    """Show the contents of profile NAME."""
    profile = obj.session().repository.load(name)
    if profile is None:
        fail(f"Profile not found: {name}")

    reveal_chars = obj.settings.reveal_chars()
    variables = {
        key: value if reveal else mask_value(value, reveal_chars) for key, value in sorted(profile.variables.items())
    }

    if obj.json_mode:
        emit_json(
            {
                "name": profile.name,
                "path": str(profile.path),
                "location": profile.location.value,
                "description": profile.metadata.description,
                "tags": profile.metadata.tags,
                "variables": variables,
            }
        )
        return

    location = f"{profile.location.value}: {profile.path}"
    console.print(f"[bold cyan]{escape(profile.name)}[/bold cyan] [dim]({escape(location)})[/dim]")
    if profile.metadata.description:
        console.print(escape(profile.metadata.description))
    if profile.metadata.tags:
        console.print(f"[magenta]Tags: {escape(', '.join(profile.metadata.tags))}[/magenta]")
    for key, value in variables.items():
        console.print(f"  [cyan]{key}[/cyan]={escape(value)}")


@cli.command()
@click.argument("name")
@click.option("--global", "is_global", is_flag=True, help="Create in the global profiles directory")
@click.option("--description", "-d", default=None, help="Profile description")
@click.option("--tags", "-t", default=None, help="Comma-separated tags")
@click.option("--set", "assignments", multiple=True, metavar="KEY=VALUE", help="Initial variable (repeatable)")
@click.pass_obj
def create(
    obj: CliContext,
    name: str,
    is_global: bool,
    description: str | None,
    tags: str | None,
    assignments: tuple[str, ...],
) -> None:
    """Create profile NAME."""
    repository = obj.session().repository
    if repository.exists(name):
        fail(f"Profile already exists: {name}")

    variables: dict[str, str] = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep or not key.strip():
            fail(f"Expected KEY=VALUE, got: {assignment}")
        variables[key.strip()] = value

    metadata = ProfileMetadata(description=description or f"Profile {name}", tags=split_csv(tags) or [])
    try:
        path = repository.save(name, repository.render(metadata, variables), local=not is_global)
    except EnvizeError as e:
        fail(str(e))

    if obj.json_mode:
        emit_json({"action": "create", "name": name, "path": str(path), "local": not is_global})
        return
    console.print(f"[green]✓[/green] Created profile: [bold]{escape(name)}[/bold]")
    console.print(f"[dim]  Path: {path}[/dim]")


@cli.command()
@click.argument("name")
@click.option("--force", "-f", is_flag=True, help="Delete even if the profile is active")
@click.pass_obj
def rm(obj: CliContext, name: str, force: bool) -> None:
    """Delete profile NAME."""
    session = obj.session()
    profile = session.repository.load(name)
    if profile is None:
        fail(f"Profile not found: {name}")

    if name in session.state.get_active_profiles() and not force:
        fail(f'Profile "{name}" is currently active. Run "envize remove {name}" first, or pass --force.')

    try:
        deleted = session.repository.delete(name)
    except EnvizeError as e:
        fail(str(e))

    if obj.json_mode:
        emit_json({"action": "rm", "name": name, "path": str(profile.path), "deleted": deleted})
        return
    console.print(f"[green]✓[/green] Deleted profile: [bold]{escape(name)}[/bold]")


@cli.command(name="import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--name", "-n", default=None, help="Profile name (default: file name without .env)")
@click.option("--description", "-d", default=None, help="Profile description")
@click.option("--tags", "-t", default=None, help="Comma-separated tags")
@click.option("--global", "is_global", is_flag=True, help="Import into the global profiles directory")
@click.pass_obj
def import_profile(
    obj: CliContext,
    file: Path,
    name: str | None,
    description: str | None,
    tags: str | None,
    is_global: bool,
) -> None:
    """Import a .env FILE as a new profile."""
    profile_name = name or default_profile_name(file)
    repository = obj.session().repository
    try:
        path = repository.import_dotenv(
            file, profile_name, local=not is_global, description=description, tags=split_csv(tags)
        )
    except EnvizeError as e:
        fail(str(e))

    count = len(repository.load(profile_name).variables)
    if obj.json_mode:
        emit_json(
            {
                "action": "import",
                "source": str(file),
                "name": profile_name,
                "path": str(path),
                "variable_count": count,
            }
        )
        return
    console.print(f"[green]✓[/green] Imported: [bold]{escape(profile_name)}[/bold]")
    console.print(f"[dim]  Path: {path}[/dim]")
    console.print(f"[dim]  Variables: {count}[/dim]")


def default_profile_name(file: Path) -> str:
    """``.env.staging`` -> ``staging``, ``prod.env`` -> ``prod``."""
    name = file.name
    if name.startswith(".env."):
        return name[len(".env.") :]
    if name.endswith(".env") and len(name) > len(".env"):
        return name[: -len(".env")]
    return name.lstrip(".") or "imported"


@cli.command(name="export")
@click.option("--profiles", "profile_names", default=None, help="Comma-separated profiles to export instead")
@click.option("--reveal", is_flag=True, help="Write full values")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Write to a file")
@click.pass_obj
def export_env(obj: CliContext, profile_names: str | None, reveal: bool, output: Path | None) -> None:
    """Export active variables (or given profiles) in .env format."""
    session = obj.session()
    if profile_names:
        try:
            variables = session.resolver.resolve(split_csv(profile_names) or []).variables
        except EnvizeError as e:
            fail(str(e))
    else:
        variables = session.state.get_variables()
        if not variables:
            err_console.print("[dim]No active variables to export[/dim]")
            return

    content = session.repository.export_dotenv(variables, reveal=reveal, reveal_chars=obj.settings.reveal_chars())

    if output is None:
        click.echo(content, nl=False)
        return

    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(content, encoding="utf-8")
    except OSError as e:
        fail(f"Failed to write {output}: {e}")

    if obj.json_mode:
        emit_json({"action": "export", "output": str(output), "reveal": reveal})
    else:
        err_console.print(f"[green]✓[/green] Exported to: {output}")


# ===== Shell integration =====


def require_shell(obj: CliContext, override: str | None) -> Shell:
    shell = obj.shell(override)
    if shell is Shell.UNKNOWN:
        raise UnsupportedShellError("Could not detect shell. Use --shell to specify bash, zsh or fish.")
    return shell


@cli.command()
@click.argument("shell", required=False, type=SHELL_CHOICES)
@click.pass_obj
def hook(obj: CliContext, shell: str | None) -> None:
    """Print the shell wrapper, for eval "$(envize hook)" in an rc file."""
    try:
        dialect = require_shell(obj, shell)
    except EnvizeError as e:
        fail(str(e))
    click.echo(ShellGenerator(dialect).shell_wrapper())


@cli.command()
@click.option("--shell", type=SHELL_CHOICES, default=None, help="Override shell detection")
@click.option("--rc-file", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Startup file to edit")
@click.option("--dry-run", is_flag=True, help="Show what would be done")
@click.pass_obj
def install(obj: CliContext, shell: str | None, rc_file: Path | None, dry_run: bool) -> None:
    """Install the shell wrapper into your shell startup file."""
    try:
        dialect = require_shell(obj, shell)
    except EnvizeError as e:
        fail(str(e))

    generator = ShellGenerator(dialect)
    rc_path = rc_file or shell_rc_path(dialect)

    if dry_run:
        console.print(f"Would install shell wrapper into: {rc_path}")
        click.echo(generator.full_wrapper_block())
        return

    try:
        obj.paths.global_profiles.mkdir(parents=True, exist_ok=True)
        fresh = generator.install(rc_path)
    except OSError as e:
        fail(f"Failed to create {obj.paths.global_profiles}: {e}")
    except EnvizeError as e:
        fail(str(e))

    console.print(f"[green]✓[/green] {'Installed' if fresh else 'Updated'} shell wrapper in {rc_path}")
    console.print(f"[dim]Restart your shell or run: source {rc_path}[/dim]")


@cli.command()
@click.option("--shell", type=SHELL_CHOICES, default=None, help="Override shell detection")
@click.option("--rc-file", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Startup file to edit")
@click.pass_obj
def uninstall(obj: CliContext, shell: str | None, rc_file: Path | None) -> None:
    """Remove the shell wrapper from your shell startup file."""
    try:
        dialect = require_shell(obj, shell)
        rc_path = rc_file or shell_rc_path(dialect)
        removed = ShellGenerator(dialect).uninstall(rc_path)
    except EnvizeError as e:
        fail(str(e))

    if removed:
        console.print(f"[green]✓[/green] Removed shell wrapper from {rc_path}")
    else:
        console.print(f"[dim]No shell wrapper found in {rc_path}[/dim]")


# ===== Settings =====


@cli.group()
def config() -> None:
    """Read and write envize settings."""


@config.command(name="get")
@click.argument("key", required=False)
@click.pass_obj
def config_get(obj: CliContext, key: str | None) -> None:
    """Show merged settings, or a single KEY."""
    merged = obj.settings.get_merged_settings()
    if key is not None:
        if key not in merged:
            fail(f"Unknown setting: {key}")
        merged = {key: merged[key]}

    if obj.json_mode:
        emit_json(merged)
    else:
        for name, value in merged.items():
            click.echo(f"{name}: {value}")


@config.command(name="set")
@click.argument("key")
@click.argument("value")
@click.option("--local", "is_local", is_flag=True, help="Write to the project settings file")
@click.pass_obj
def config_set(obj: CliContext, key: str, value: str, is_local: bool) -> None:
    """Set KEY to VALUE."""
    scope = Scope.LOCAL if is_local else Scope.USER
    try:
        obj.settings.set_setting(key, value, scope=scope)
    except EnvizeError as e:
        fail(str(e))
    console.print(f"[green]✓[/green] Set {escape(key)} in {scope.value} settings")


@config.command(name="unset")
@click.argument("key")
@click.option("--local", "is_local", is_flag=True, help="Edit the project settings file")
@click.pass_obj
def config_unset(obj: CliContext, key: str, is_local: bool) -> None:
    """Remove KEY from a settings file."""
    scope = Scope.LOCAL if is_local else Scope.USER
    try:
        removed = obj.settings.unset_setting(key, scope=scope)
    except EnvizeError as e:
        fail(str(e))
    if removed:
        console.print(f"[green]✓[/green] Removed {escape(key)} from {scope.value} settings")
    else:
        console.print(f"[dim]{escape(key)} is not set in {scope.value} settings[/dim]")


def main() -> None:
    cli(obj=None)


if __name__ == "__main__":
    main()
