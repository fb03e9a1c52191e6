"""Command-line interface for pqs."""

from __future__ import annotations

import logging
from pathlib import Path

import click
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from pqs import __version__
from pqs.config import (
    PqsConfig,
    find_config_file,
    get_config_search_paths,
    load_config,
    resolve_cache_root,
)
from pqs.console import console
from pqs.errors import PqsError, PromptCancelledError, TemplateNotFoundError
from pqs.git import DEFAULT_CLONE_TIMEOUT, CacheIndex, RepositoryFetcher
from pqs.git.cache import DEFAULT_CLEANUP_DAYS, DEFAULT_MAX_AGE_DAYS
from pqs.pipeline import MaterializationReport, Materializer, StepResult
from pqs.prompts import ask_questions, parse_template_args, reserved_flag_conflicts
from pqs.templates import Step, TemplateCatalog, TemplateSource, discover_templates

logger = logging.getLogger(__name__)

COMMAND_ALIASES = {"l": "list", "c": "create"}

STATUS_SYMBOLS = {
    "done": "[green]✓[/green]",
    "skipped": "[dim]-[/dim]",
    "failed": "[red]✗[/red]",
    "planned": "[cyan]→[/cyan]",
}


class AliasedGroup(click.Group):
    """Group that also accepts short command aliases."""

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        return super().get_command(ctx, COMMAND_ALIASES.get(cmd_name, cmd_name))

    def resolve_command(
        self, ctx: click.Context, args: list[str]
    ) -> tuple[str | None, click.Command | None, list[str]]:
        _, cmd, remaining = super().resolve_command(ctx, args)
        return (cmd.name if cmd else None), cmd, remaining


def configure_logging(verbose: bool) -> None:
    """Route log records through rich; DEBUG with --verbose, else WARNING."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_settings() -> tuple[PqsConfig, RepositoryFetcher]:
    config = load_config()
    cache = CacheIndex(resolve_cache_root(config))
    fetcher = RepositoryFetcher(
        cache, clone_timeout=config.clone_timeout or DEFAULT_CLONE_TIMEOUT
    )
    return config, fetcher


def _discover(
    config: PqsConfig,
    fetcher: RepositoryFetcher,
    quiet: bool = True,
    refresh: bool = False,
) -> TemplateCatalog:
    catalog = discover_templates(
        config.template_locations or (),
        fetcher=fetcher,
        quiet=quiet,
        refresh_stale=refresh,
        max_age_days=config.cache_max_age_days or DEFAULT_MAX_AGE_DAYS,
    )
    for warning in catalog.warnings:
        console.print(f"[yellow]Warning: {escape(warning)}[/yellow]")
    return catalog


def _print_template_names(catalog: TemplateCatalog) -> None:
    if not len(catalog):
        console.print("[yellow]No templates found.[/yellow]")
        return
    console.print("Available templates:")
    for name in catalog.names():
        console.print(f"  [cyan]{escape(name)}[/cyan]")


def version_callback(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
    """Print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    console.print(f"pqs [bold cyan]{__version__}[/bold cyan]")
    ctx.exit()


@click.group(cls=AliasedGroup, invoke_without_command=True)
@click.option(
    "--version",
    is_flag=True,
    callback=version_callback,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """pqs - scaffold new projects from reusable templates."""
    configure_logging(verbose)

    if ctx.invoked_subcommand is None:
        console.print("[bold]pqs[/bold] - project quick start")
        console.print("\nRun [cyan]pqs --help[/cyan] for available commands.")


@main.command()
def version() -> None:
    """Show the pqs version."""
    console.print(f"pqs [bold cyan]{__version__}[/bold cyan]")


@main.command("list")
@click.option("--verbose", "-v", is_flag=True, help="Show template details.")
def list_templates(verbose: bool) -> None:
    """List available templates (alias: l)."""
    config, fetcher = _load_settings()
    catalog = _discover(config, fetcher)

    if not len(catalog):
        console.print("[yellow]No templates found.[/yellow]")
        console.print(
            "[dim]Add template locations to ~/.pqs/config.yaml "
            "(template_locations).[/dim]"
        )
        return

    console.print("[bold]Available templates:[/bold]\n")
    for name in catalog.names():
        template = catalog.require(name)
        label = "(remote)" if template.is_remote else "(local)"
        line = f"  [cyan]{escape(name)}[/cyan] [dim]{label}[/dim]"
        if template.description:
            line += f" - {escape(template.description)}"
        console.print(line)
        if verbose:
            console.print(f"    [dim]Source: {escape(template.source)}[/dim]")
            console.print(f"    [dim]Path: {template.path}[/dim]")
            if template.questions:
                names = ", ".join(q.name for q in template.questions)
                console.print(f"    [dim]Questions: {escape(names)}[/dim]")


def _announce_step(index: int, step: Step) -> None:
    if step.description:
        console.print(f"[bold]{escape(step.description)}[/bold]")


def _print_step(result: StepResult) -> None:
    symbol = STATUS_SYMBOLS[result.status]
    label = result.description or result.type
    console.print(f"  {symbol} {escape(label)}")
    if result.detail:
        for line in result.detail.splitlines():
            console.print(f"    [dim]{escape(line)}[/dim]")
    for warning in result.warnings:
        console.print(f"    [yellow]{escape(warning)}[/yellow]")


def _print_report(report: MaterializationReport) -> None:
    if report.dry_run:
        console.print(f"Output directory: {report.output_path}")
        console.print("Files that would be copied:")
        for rel in report.files:
            console.print(f"  {escape(rel)}")
    else:
        console.print(
            f"[green]✓[/green] Copied {len(report.files)} files to "
            f"{report.output_path}"
        )

    if report.steps:
        console.print("\n[bold]Template steps:[/bold]")
        for result in report.steps:
            _print_step(result)


@main.command(
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True}
)
@click.argument("template_name", metavar="TEMPLATE")
@click.argument("template_args", nargs=-1, type=click.UNPROCESSED)
@click.option("--output", "-o", type=click.Path(), help="Output directory.")
@click.option(
    "--force", "-f", is_flag=True, help="Create even if the output is not empty."
)
@click.option("--dry-run", "-d", is_flag=True, help="Show what would be done.")
@click.option(
    "--refresh",
    is_flag=True,
    help="Re-download remote templates whose cache is stale.",
)
def create(
    template_name: str,
    template_args: tuple[str, ...],
    output: str | None,
    force: bool,
    dry_run: bool,
    refresh: bool,
) -> None:
    """Create a new project from TEMPLATE (alias: c).

    Template questions can be answered up front with the flags the
    template declares, e.g. pqs create react-app --name my-app.
    """
    config, fetcher = _load_settings()
    catalog = _discover(config, fetcher, quiet=False, refresh=refresh)

    try:
        template = catalog.require(template_name)
    except TemplateNotFoundError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        _print_template_names(catalog)
        raise SystemExit(1) from None

    for conflict in reserved_flag_conflicts(template):
        console.print(f"[yellow]Warning: {escape(conflict)}[/yellow]")

    cli_args = parse_template_args(template_args, template)

    try:
        answers = ask_questions(template, cli_args)
    except PromptCancelledError as e:
        console.print(f"[yellow]{e}[/yellow]")
        return

    if dry_run:
        console.print("\n[bold]--- DRY RUN ---[/bold]")

    materializer = Materializer(
        template,
        answers,
        output=output,
        force=force,
        dry_run=dry_run,
        on_step=None if dry_run else _announce_step,
    )
    try:
        report = materializer.run()
    except PqsError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise SystemExit(1) from None
    except OSError as e:
        console.print(f"[red]Error creating project: {escape(str(e))}[/red]")
        raise SystemExit(1) from None

    _print_report(report)

    if dry_run:
        console.print("\n--- END DRY RUN ---")
        return

    if not report.succeeded:
        console.print("\n[yellow]Some steps failed; see above.[/yellow]")
    console.print(
        f"\n[green]Project created successfully![/green] "
        f"[dim]{_relative(report.output_path)}[/dim]"
    )


@main.group(invoke_without_command=True)
@click.pass_context
def cache(ctx: click.Context) -> None:
    """Manage cached remote templates.

    Use subcommands: pqs cache list, stats, clean, clear, update, remove
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cache.command("list")
def cache_list() -> None:
    """List cached repositories."""
    config, fetcher = _load_settings()
    entries = fetcher.cache.list_entries()
    if not entries:
        console.print("[dim]No cached repositories.[/dim]")
        return

    max_age = config.cache_max_age_days or DEFAULT_MAX_AGE_DAYS
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Repository", style="cyan")
    table.add_column("Branch", style="dim")
    table.add_column("Updated")
    table.add_column("Status")
    for entry in sorted(entries, key=lambda e: e.url):
        if not entry.exists:
            status = "[red]missing[/red]"
        elif entry.is_older_than(max_age):
            status = "[yellow]stale[/yellow]"
        else:
            status = "[green]valid[/green]"
        table.add_row(
            escape(f"{entry.host}/{entry.full_name}"),
            escape(entry.branch or "default"),
            entry.last_updated.isoformat()[:19],
            status,
        )
    console.print(table)


@cache.command("stats")
def cache_stats() -> None:
    """Show cache statistics."""
    config, fetcher = _load_settings()
    stats = fetcher.cache.stats(config.cache_max_age_days or DEFAULT_MAX_AGE_DAYS)
    console.print("[bold]Cache statistics:[/bold]")
    console.print(f"  Location: {stats.cache_path}")
    console.print(f"  Total entries: {stats.total_entries}")
    console.print(f"  Valid entries: {stats.valid_entries}")
    console.print(f"  Stale entries: {stats.stale_entries}")
    console.print(f"  Missing entries: {stats.missing_entries}")
    console.print(f"  Cached files: {stats.approximate_size}")


@cache.command("clean")
@click.option(
    "--older-than",
    type=int,
    default=None,
    help=f"Remove entries older than N days (default: {DEFAULT_CLEANUP_DAYS}).",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be removed without actually removing.",
)
def cache_clean(older_than: int | None, dry_run: bool) -> None:
    """Remove stale entries and orphaned cache directories."""
    config, fetcher = _load_settings()
    days = older_than if older_than is not None else (
        config.cache_cleanup_days or DEFAULT_CLEANUP_DAYS
    )
    stale = fetcher.cache.cleanup_stale(days, dry_run=dry_run)
    orphaned = fetcher.cache.cleanup_orphaned(dry_run=dry_run)
    removed = stale + orphaned

    if not removed:
        console.print("[dim]Cache is clean.[/dim]")
        return

    verb = "Would remove" if dry_run else "Removed"
    color = "yellow" if dry_run else "green"
    console.print(f"[{color}]{verb} {len(removed)} cache entries:[/{color}]")
    for key in stale:
        console.print(f"  - {escape(key)} [dim](stale)[/dim]")
    for key in orphaned:
        console.print(f"  - {escape(key)} [dim](orphaned)[/dim]")


@cache.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def cache_clear(yes: bool) -> None:
    """Remove all cached repositories."""
    _, fetcher = _load_settings()
    if not yes and not click.confirm("Remove all cached templates?", default=False):
        console.print("[yellow]Cache not cleared.[/yellow]")
        return
    fetcher.cache.clear()
    console.print("[green]✓[/green] Cache cleared.")


def _remote_source(location: str) -> TemplateSource:
    _, fetcher = _load_settings()
    source = TemplateSource(location, fetcher=fetcher)
    if not source.is_remote:
        console.print(f"[red]Not a git repository URL: {escape(location)}[/red]")
        raise SystemExit(1)
    return source


@cache.command("update")
@click.argument("location")
def cache_update(location: str) -> None:
    """Re-download a cached remote template repository."""
    source = _remote_source(location)
    try:
        path = source.update()
    except PqsError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise SystemExit(1) from None
    console.print(f"[green]✓[/green] Updated {escape(location)} [dim]({path})[/dim]")


@cache.command("remove")
@click.argument("location")
def cache_remove(location: str) -> None:
    """Remove a remote template repository from the cache."""
    source = _remote_source(location)
    if source.cache_info() is None:
        console.print(f"[dim]{escape(location)} is not cached.[/dim]")
        return
    source.remove_from_cache()
    console.print(f"[green]✓[/green] Removed {escape(location)} from cache.")


@main.command("config")
def show_config() -> None:
    """Show the effective configuration."""
    found = find_config_file()
    config = load_config()

    console.print("\n[bold]Current Effective Configuration:[/bold]")
    if found is not None:
        console.print(f"  [dim]Loaded from: {found[0]}[/dim]")
    else:
        console.print("  [dim]No config file found, using built-in defaults[/dim]")
    console.print()

    for key, value in config.to_dict().items():
        if isinstance(value, list):
            console.print(f"  {key}:")
            for item in value:
                console.print(f"    - {escape(str(item))}")
        else:
            console.print(f"  {key}: {escape(str(value))}")
    console.print(f"  cache_root: {resolve_cache_root(config)}")

    console.print("\n[dim]Searched (first found wins):[/dim]")
    for path in get_config_search_paths():
        marker = "[green]✓[/green]" if path.exists() else "[dim]-[/dim]"
        console.print(f"  {marker} {path}")


def _relative(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)
