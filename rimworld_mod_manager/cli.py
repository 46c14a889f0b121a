"""Command-line interface for rimworld-mod-manager."""

import logging
import subprocess
import sys
from pathlib import Path

import click
from click.shell_completion import get_completion_class
from rich.console import Console
from rich.logging import RichHandler
from rich.pager import Pager
from rich.table import Table

from .api import WorkshopAPI, WorkshopAPIError
from .config import ConfigError, InstallerConfig
from .installer import InstallReport, InstallRequest, ModInstaller, WorkshopResolver
from .local_mods import GamePath, GamePathError, scan_local_mods
from .mods import CandidateRecord
from .search import FilterResult, FilterSpec, filter_records, valid_records
from .steamcmd import SteamCMD, SteamCMDError

console = Console()


class AliasedGroup(click.Group):
    """click group that also accepts short aliases for its commands."""

    def __init__(self, *args, aliases: dict[str, tuple[str, ...]] | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.aliases = aliases or {}

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        command = super().get_command(ctx, cmd_name)
        if command is not None:
            return command

        path = self.aliases.get(cmd_name)
        if not path:
            return None

        # An alias may point into a subgroup, e.g. "ss" -> search steam
        command = super().get_command(ctx, path[0])
        for part in path[1:]:
            if not isinstance(command, click.Group):
                return None
            command = command.get_command(ctx, part)
        return command

    def resolve_command(self, ctx: click.Context, args: list[str]):
        _, command, args = super().resolve_command(ctx, args)
        return command.name if command else None, command, args


class ExternalPager(Pager):
    """Pipes output through the pager program named in the config."""

    def __init__(self, command: str):
        self.command = command

    def show(self, content: str) -> None:
        try:
            with subprocess.Popen([self.command], stdin=subprocess.PIPE) as process:
                process.communicate(content.encode("utf-8"))
        except OSError as e:
            console.print(f"[yellow]Could not run pager '{self.command}':[/yellow] {e}")
            sys.stdout.write(content)


def _configure_logging(verbose: bool = False, debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=debug)],
        force=True,
    )


def _load_config() -> InstallerConfig:
    try:
        return InstallerConfig.load()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def _game_path(config: InstallerConfig) -> GamePath:
    if not config.rimworld_path:
        console.print("[red]Error:[/red] RimWorld path is not set.")
        console.print("Run 'rrm set game-path <PATH>' first.")
        sys.exit(1)
    try:
        return GamePath(config.rimworld_path)
    except GamePathError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def _filter_spec(
    filter_query: str | None,
    name: bool,
    author: bool,
    description: bool,
    steam_id: bool,
    all_fields: bool,
) -> FilterSpec | None:
    """FilterSpec for --filter, or None when no filter was asked for."""
    if filter_query is None:
        if name or author or description or steam_id or all_fields:
            raise click.UsageError("Field flags require --filter")
        return None
    return FilterSpec.from_options(
        title=name,
        author=author,
        description=description,
        steam_id=steam_id,
        all_fields=all_fields,
    )


def field_options(func):
    """Shared -n/-a/-d/-s/--all match field flags."""
    options = [
        click.option("-n", "--name", is_flag=True, help="Search by mod name"),
        click.option("-a", "--author", is_flag=True, help="Search by author(s) name(s)"),
        click.option("-d", "--description", is_flag=True, help="Search by description"),
        click.option("-s", "--steam-id", is_flag=True, help="Search by Steam ID"),
        click.option("--all", "all_fields", is_flag=True, help="Search by all fields"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def filter_option(func):
    return click.option(
        "-f",
        "--filter",
        "filter_query",
        is_flag=False,
        flag_value="",
        default=None,
        metavar="[QUERY]",
        help="Filter results (by the mod name unless QUERY is given)",
    )(func)


def display_options(func):
    func = click.option(
        "--pager/--no-pager",
        "pager",
        default=None,
        help="Force (or forbid) paging software for the output",
    )(func)
    return click.option("--large", is_flag=True, help="Display the larger message")(func)


def _mods_table(records: list[CandidateRecord], title_width: int = 0, numbered: bool = False) -> Table:
    table = Table()
    if numbered:
        table.add_column("#", justify="right", style="dim")
    table.add_column("Steam ID", justify="right", style="cyan")
    table.add_column("Name", min_width=title_width or None)
    table.add_column("Uploader", style="green")

    for i, record in enumerate(records):
        row = [str(record.id) if record.id else "-", record.title, record.author]
        if numbered:
            row.insert(0, str(i))
        table.add_row(*row)
    return table


def _print_large(records: list[CandidateRecord]) -> None:
    for record in records:
        console.print(f"[bold]Name     :[/bold] {record.title}")
        console.print(f"[bold]Steam ID :[/bold] {record.id or '-'}")
        console.print(f"[bold]Author   :[/bold] {record.author}")
        console.print(f"[bold]Description:[/bold] {record.description}\n")


def _display(result: FilterResult, large: bool, pager: bool | None, config: InstallerConfig) -> None:
    if not result.records:
        console.print("No results found")
        return

    def render() -> None:
        if large:
            _print_large(result.records)
        else:
            console.print(_mods_table(result.records, result.title_width))

    if pager or (pager is None and config.use_pager):
        with console.pager(pager=ExternalPager(config.pager), styles=True):
            render()
    else:
        render()


def _prompt_choice(query: str, candidates: list[CandidateRecord]) -> CandidateRecord | None:
    """Let the user pick one of several matching mods."""
    console.print(f"\n[bold]Several mods match '{query}':[/bold]")
    console.print(_mods_table(candidates, numbered=True))
    index = click.prompt(
        "Select a mod",
        type=click.IntRange(0, len(candidates) - 1),
        default=0,
    )
    return candidates[index]


def _print_progress(event: str, identifier: str, msg: str) -> None:
    if event == "download":
        console.print(f"[dim]{msg}[/dim]")
    elif event == "installed":
        console.print(f"  [green]{msg}[/green]")
    elif event == "unresolved":
        console.print(f"[yellow]Could not resolve[/yellow] {identifier}: {msg}")
    elif event == "failed":
        console.print(f"[red]Failed:[/red] {identifier}: {msg}")


def _print_retry(attempt: int, output: str) -> None:
    console.print(f"[yellow]SteamCMD session not ready, still retrying (attempt {attempt})...[/yellow]")


def _print_report(report: InstallReport) -> None:
    table = Table(title="Install Results")
    table.add_column("Mod", style="cyan")
    table.add_column("Steam ID", justify="right")
    table.add_column("Status")
    table.add_column("Message", style="dim")

    for outcome in report.outcomes:
        name = outcome.title or outcome.identifier
        if outcome.depth:
            name = f"{'  ' * outcome.depth}{name}"
        table.add_row(
            name[:50],
            str(outcome.mod_id) if outcome.mod_id is not None else "-",
            "[green]Installed[/green]" if outcome.succeeded else "[red]Failed[/red]",
            outcome.raw_message[:80],
        )

    console.print(table)
    console.print(
        f"[bold]{len(report.succeeded)} installed, {len(report.failed)} failed.[/bold]"
    )


def _steamcmd(config: InstallerConfig, max_attempts: int | None) -> SteamCMD:
    steamcmd = SteamCMD(
        install_dir=config.steamcmd_dir,
        home_dir=config.config_dir,
        max_attempts=config.max_download_attempts if max_attempts is None else max_attempts,
        on_retry=_print_retry,
    )
    if not steamcmd.is_installed():
        console.print("[bold]Installing SteamCMD...[/bold]")
        try:
            steamcmd.ensure_installed()
        except SteamCMDError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        console.print("[green]Done![/green]")
    return steamcmd


def _run_install(
    config: InstallerConfig,
    request: InstallRequest,
    max_attempts: int | None,
    chooser=None,
) -> None:
    game = _game_path(config)
    steamcmd = _steamcmd(config, max_attempts)
    installer = ModInstaller(
        steamcmd,
        WorkshopResolver(WorkshopAPI(), chooser=chooser),
        game.mods_dir,
        on_progress=_print_progress,
    )

    try:
        report = installer.install(request)
    except SteamCMDError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if not report.outcomes:
        console.print("[yellow]Nothing to install.[/yellow]")
        return

    _print_report(report)
    if not report.all_succeeded:
        sys.exit(1)


@click.group(cls=AliasedGroup, aliases={
    "i": ("install",),
    "s": ("search",),
    "l": ("list",),
    "ss": ("search", "steam"),
    "sl": ("search", "local"),
})
@click.version_option(package_name="rimworld-mod-manager")
def main() -> None:
    """Manage RimWorld mods from the Steam Workshop."""
    _configure_logging()


@main.command()
@click.argument("mods", nargs=-1, required=True)
@filter_option
@field_options
@click.option("-y", "--yes", is_flag=True, help="Yes to all questions")
@click.option(
    "-r",
    "--resolve",
    "--resolve-dependencies",
    "resolve",
    is_flag=True,
    help="Automatic dependencies installation",
)
@click.option(
    "--max-attempts",
    type=click.IntRange(min=0),
    default=None,
    help="SteamCMD attempts per download (0 retries forever)",
)
@click.option("--verbose", "--vvv", is_flag=True, help="Show more information about the process")
@click.option("--debug", is_flag=True, help="Show even more information. Expect a lot of output")
def install(
    mods: tuple[str, ...],
    filter_query: str | None,
    name: bool,
    author: bool,
    description: bool,
    steam_id: bool,
    all_fields: bool,
    yes: bool,
    resolve: bool,
    max_attempts: int | None,
    verbose: bool,
    debug: bool,
) -> None:
    """
    Install RimWorld mods by name, Steam ID or workshop URL.

    MODS: One or more mod names, workshop IDs or workshop URLs
    """
    _configure_logging(verbose, debug)
    config = _load_config()
    filter_spec = _filter_spec(filter_query, name, author, description, steam_id, all_fields)

    request = InstallRequest(
        list(mods),
        resolve_dependencies=resolve,
        filter_spec=filter_spec,
        filter_query=filter_query or None,
    )
    _run_install(config, request, max_attempts, chooser=None if yes else _prompt_choice)


@main.command()
@click.option(
    "-r",
    "--resolve",
    "--resolve-dependencies",
    "resolve",
    is_flag=True,
    help="Automatic dependencies installation",
)
@click.option(
    "--max-attempts",
    type=click.IntRange(min=0),
    default=None,
    help="SteamCMD attempts per download (0 retries forever)",
)
@click.option("--verbose", "--vvv", is_flag=True, help="Show more information about the process")
@click.option("--debug", is_flag=True, help="Show even more information. Expect a lot of output")
def pull(resolve: bool, max_attempts: int | None, verbose: bool, debug: bool) -> None:
    """Install every installed workshop mod again."""
    _configure_logging(verbose, debug)
    config = _load_config()
    game = _game_path(config)

    installed = valid_records(scan_local_mods(game.mods_dir))
    if not installed:
        console.print("[yellow]No workshop mods installed.[/yellow]")
        return

    console.print(f"[bold]Mods to pull:[/bold] {len(installed)}")
    request = InstallRequest([str(record.id) for record in installed], resolve_dependencies=resolve)
    _run_install(config, request, max_attempts)


@main.group(cls=AliasedGroup, aliases={"s": ("steam",), "l": ("local",)})
def search() -> None:
    """Search for mods locally or in Steam."""


@search.command("steam")
@click.argument("mod")
@filter_option
@field_options
@display_options
def search_steam(
    mod: str,
    filter_query: str | None,
    name: bool,
    author: bool,
    description: bool,
    steam_id: bool,
    all_fields: bool,
    large: bool,
    pager: bool | None,
) -> None:
    """
    Search for mods in the Steam Workshop.

    MOD: The name of the RimWorld mod
    """
    config = _load_config()
    filter_spec = _filter_spec(filter_query, name, author, description, steam_id, all_fields)

    try:
        with console.status("[dim]Searching the workshop...[/dim]"):
            records = WorkshopAPI().search(mod)
    except WorkshopAPIError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if filter_spec is not None:
        result = filter_records(records, filter_spec, filter_query or mod)
    else:
        result = FilterResult()
        for record in valid_records(records):
            result.add(record)

    _display(result, large, pager, config)


@search.command("local")
@click.argument("string")
@field_options
@display_options
def search_local(
    string: str,
    name: bool,
    author: bool,
    description: bool,
    steam_id: bool,
    all_fields: bool,
    large: bool,
    pager: bool | None,
) -> None:
    """
    Search for mods where RimWorld is installed (by name unless told otherwise).

    STRING: The pattern to search
    """
    config = _load_config()
    game = _game_path(config)

    spec = FilterSpec.from_options(
        title=name,
        author=author,
        description=description,
        steam_id=steam_id,
        all_fields=all_fields,
    )
    result = filter_records(scan_local_mods(game.mods_dir), spec, string)
    _display(result, large, pager, config)


@main.command("list")
@display_options
def list_mods(large: bool, pager: bool | None) -> None:
    """List installed mods in Path/To/RimWorld/Mods/."""
    config = _load_config()
    game = _game_path(config)

    result = FilterResult()
    for record in scan_local_mods(game.mods_dir):
        result.add(record)
    _display(result, large, pager, config)


@main.group("set", cls=AliasedGroup, aliases={
    "use-paging": ("use-pager",),
    "path": ("game-path",),
    "paging": ("pager",),
})
def set_config() -> None:
    """Set new configuration values."""


@set_config.command("use-pager")
@click.argument("value", type=click.Choice(["true", "false", "0", "1"]))
def set_use_pager(value: str) -> None:
    """Set if rrm should use paging software to display output."""
    config = _load_config()
    config.use_pager = value in ("true", "1")
    _save_config(config)


@set_config.command("game-path")
@click.argument("value", type=click.Path(path_type=Path))
def set_game_path(value: Path) -> None:
    """Set the path where RimWorld is installed."""
    config = _load_config()
    try:
        game = GamePath(value)
    except GamePathError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    config.rimworld_path = str(game.path)
    _save_config(config)


@set_config.command("pager")
@click.argument("value")
def set_pager(value: str) -> None:
    """Set the paging software to use, like bat, more or less."""
    config = _load_config()
    config.pager = value
    _save_config(config)


@set_config.command("max-attempts")
@click.argument("value", type=click.IntRange(min=0))
def set_max_attempts(value: int) -> None:
    """Set SteamCMD attempts per download (0 retries forever)."""
    config = _load_config()
    config.max_download_attempts = value
    _save_config(config)


def _save_config(config: InstallerConfig) -> None:
    try:
        config.save()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    console.print(f"[dim]Config saved to {config.config_file}[/dim]")


@main.command()
@click.argument("shell", type=click.Choice(["bash", "zsh", "fish"]))
def completions(shell: str) -> None:
    """Print the shell completion script for rrm."""
    completion_class = get_completion_class(shell)
    completion = completion_class(main, {}, "rrm", "_RRM_COMPLETE")
    click.echo(completion.source())


if __name__ == "__main__":
    main()
