"""
Command-line interface for the build pipeline.
Provides build, watch, clean and configuration commands.
"""

import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import BuildConfig, ENV_PREFIX, ENV_VARS
from .context import BuildContext, BuildLogger, setup_logging
from .pipeline import OrchestratorState, PluginOrchestrator, PluginPhase
from .plugin import PluginDependencyError, PluginError
from .plugins import default_registry
from .watch import WatchRouter

# Initialize typer app and rich console
app = typer.Typer(
    name="pixel-build",
    help="Asset build pipeline for 2D tile games - build sprite atlases, watch sources, clean outputs",
    add_completion=False,
    rich_markup_mode="rich",
    epilog="""
[bold]Examples:[/bold]
  [cyan]pixel-build build[/cyan]                     Incremental build
  [cyan]pixel-build build --clean --production[/cyan]  Full production build
  [cyan]pixel-build watch[/cyan]                     Rebuild sheets as sources change
  [cyan]pixel-build clean[/cyan]                     Remove generated output

[bold]Environment Variables:[/bold]
  Use [cyan]pixel-build config --env-vars[/cyan] to see all available variables.
    """
)
console = Console()

DEFAULT_CONFIG_FILES = [
    Path("pixel_build.toml"),
    Path("pixel_build.json"),
    Path("scripts/pixel_build.toml"),
    Path("scripts/pixel_build.json"),
]


@app.command()
def build(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    clean: bool = typer.Option(False, "--clean", help="Remove outputs and rebuild everything"),
    production: bool = typer.Option(False, "--production", help="Production build (maximum compression)"),
    plugins: Optional[str] = typer.Option(None, "--plugins", help="Comma-separated list of plugins to run"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose log output")
):
    """Run a full build of every applicable plugin."""
    console.print("[bold blue]Building assets...[/bold blue]")
    _configure_logging(verbose)

    config = _load_config(config_file)
    if clean:
        config.clean = True
    if production:
        config.production = True
    if plugins:
        config.plugins = _split_names(plugins)

    try:
        orchestrator = _create_orchestrator(config)
        state = orchestrator.run_build(clean=config.clean)
    except PluginDependencyError as e:
        console.print(f"[red]Plugin dependency error:[/red] {e}")
        raise typer.Exit(1)
    except PluginError as e:
        console.print(f"[red]Plugin error:[/red] {e}")
        raise typer.Exit(1)

    _display_build_summary(state, orchestrator.error_count)

    if orchestrator.error_count > 0:
        console.print(f"[red]✗ Build finished with {orchestrator.error_count} error(s)[/red]")
        raise typer.Exit(1)
    console.print("[green]✓ Build completed successfully![/green]")


@app.command()
def watch(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    plugins: Optional[str] = typer.Option(None, "--plugins", help="Comma-separated list of plugins to run"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose log output")
):
    """Build once, then rebuild affected sheets whenever sources change."""
    console.print("[bold blue]Starting watch mode...[/bold blue]")
    _configure_logging(verbose)

    config = _load_config(config_file)
    if plugins:
        config.plugins = _split_names(plugins)

    try:
        orchestrator = _create_orchestrator(config, watch=True, emit=_print_event)
        orchestrator.run_build(clean=config.clean)
        orchestrator.run(PluginPhase.WATCH)
    except PluginDependencyError as e:
        console.print(f"[red]Plugin dependency error:[/red] {e}")
        raise typer.Exit(1)
    except PluginError as e:
        console.print(f"[red]Plugin error:[/red] {e}")
        raise typer.Exit(1)

    router = orchestrator.router
    router.start()
    for subscription in router.subscriptions:
        console.print(f"[dim]{subscription.owner}: watching {subscription.root}[/dim]")
    console.print("[green]Watching for changes, press Ctrl+C to stop.[/green]")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping watch mode...[/yellow]")
    finally:
        router.stop()

    console.print(f"Errors during session: {orchestrator.error_count}")


@app.command()
def clean(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    plugins: Optional[str] = typer.Option(None, "--plugins", help="Comma-separated list of plugins to clean")
):
    """Remove every generated output."""
    console.print("[bold blue]Cleaning generated output...[/bold blue]")

    config = _load_config(config_file)
    if plugins:
        config.plugins = _split_names(plugins)

    try:
        orchestrator = _create_orchestrator(config)
        orchestrator.run(PluginPhase.CLEAN)
    except PluginDependencyError as e:
        console.print(f"[red]Plugin dependency error:[/red] {e}")
        raise typer.Exit(1)
    except PluginError as e:
        console.print(f"[red]Plugin error:[/red] {e}")
        raise typer.Exit(1)

    console.print("[green]✓ Clean completed[/green]")


@app.command()
def config(
    show: bool = typer.Option(False, "--show", help="Show current configuration"),
    validate_config: bool = typer.Option(False, "--validate", help="Validate configuration file"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    env_vars: bool = typer.Option(False, "--env-vars", help="Show available environment variables")
):
    """Manage build configuration."""
    if env_vars:
        _display_env_vars()
        return

    if not (show or validate_config):
        console.print("Use --show to display configuration, --validate to check it, or --env-vars to see environment variables.")
        return

    config = _load_config(config_file)

    if show:
        _display_config(config)

    if validate_config:
        errors = config.validate()
        if errors:
            console.print("[red]Configuration validation errors:[/red]")
            for error in errors:
                console.print(f"  • {error}")
            raise typer.Exit(1)
        console.print("[green]✓ Configuration is valid[/green]")


@app.command()
def version():
    """Show version information."""
    from . import __version__

    console.print("[bold]Pixel Build asset pipeline[/bold]")
    console.print(f"Version: {__version__}")
    console.print("Python: " + sys.version.split()[0])

    from importlib import metadata

    deps_status = []
    for name in ("Pillow", "numpy", "Jinja2", "typer", "rich", "watchdog"):
        try:
            deps_status.append((name, metadata.version(name), "✓"))
        except metadata.PackageNotFoundError:
            deps_status.append((name, "Not installed", "✗"))

    console.print("\n[bold]Dependencies:[/bold]")
    table = Table(show_header=False)
    table.add_column("Status", width=3)
    table.add_column("Package", style="cyan")
    table.add_column("Version", style="green")

    for name, dep_version, status in deps_status:
        color = "green" if status == "✓" else "red"
        table.add_row(f"[{color}]{status}[/{color}]", name, dep_version)

    console.print(table)


def _configure_logging(verbose: bool) -> None:
    setup_logging(logging.DEBUG if verbose else logging.INFO)


def _split_names(value: str) -> List[str]:
    return [name.strip() for name in value.split(',') if name.strip()]


def _load_config(config_file: Optional[Path]) -> BuildConfig:
    """Load configuration from file or use defaults with environment variable support."""
    config = None

    try:
        if config_file:
            if not config_file.exists():
                console.print(f"[red]Configuration file not found:[/red] {config_file}")
                raise typer.Exit(1)
            config = BuildConfig.from_file(config_file)
            console.print(f"[dim]Using configuration: {config_file}[/dim]")
        else:
            for config_path in DEFAULT_CONFIG_FILES:
                if config_path.exists():
                    console.print(f"[dim]Using configuration: {config_path}[/dim]")
                    config = BuildConfig.from_file(config_path)
                    break
    except (ValueError, OSError) as e:
        console.print(f"[red]Cannot load configuration:[/red] {e}")
        raise typer.Exit(1)

    if config is None:
        console.print("[dim]Using default configuration[/dim]")
        config = BuildConfig()

    # Apply environment variable overrides
    try:
        config = BuildConfig._apply_env_overrides(config)
    except ValueError as e:
        console.print(f"[red]Invalid environment override:[/red] {e}")
        raise typer.Exit(1)

    env_vars_used = [key for key in os.environ if key.startswith(ENV_PREFIX)]
    if env_vars_used:
        console.print(f"[dim]Environment overrides applied: {len(env_vars_used)} variables[/dim]")

    return config


def _create_orchestrator(config: BuildConfig, watch: bool = False, emit=None) -> PluginOrchestrator:
    """Build the context and register the configured plugins."""
    logger = BuildLogger()
    ctx = BuildContext.from_config(config, logger=logger, emit=emit, watch=watch)
    router = WatchRouter(debounce=config.watch_debounce, logger=logger.child("watch"))
    orchestrator = PluginOrchestrator(ctx, router)

    for plugin in default_registry().create_plugins(config.plugins):
        orchestrator.register(plugin)
    return orchestrator


def _print_event(event: Dict[str, Any]) -> None:
    sheet = event.get("sheet", {})
    console.print(f"[cyan]{event.get('type')}[/cyan] {sheet.get('name', '')}")
    console.print(f"[dim]{json.dumps(sheet.get('urls', {}))}[/dim]")


def _display_build_summary(state: OrchestratorState, error_count: int) -> None:
    """Display build execution summary."""
    total_duration = 0.0
    if state.start_time:
        total_duration = time.time() - state.start_time

    console.print("\n[bold]Build Summary[/bold]")
    console.print("=" * 50)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    built = [r for r in state.results_for(PluginPhase.BUILD) if r.success]
    table.add_row("Total execution time", f"{total_duration:.2f}s")
    table.add_row("Plugins built", str(len(built)))
    table.add_row("Plugins failed", str(len(state.failed)))
    table.add_row("Plugins skipped", str(len(state.skipped)))
    table.add_row("Plugins not applicable", str(len(state.not_applicable)))
    table.add_row("Errors", str(error_count))

    console.print(table)

    results = state.results_for(PluginPhase.BUILD)
    if results:
        console.print("\n[bold]Plugin Details[/bold]")
        plugin_table = Table()
        plugin_table.add_column("Plugin", style="cyan")
        plugin_table.add_column("Status", width=8)
        plugin_table.add_column("Duration", style="yellow")
        plugin_table.add_column("Message", style="dim")

        for result in results:
            status = "[green]✓[/green]" if result.success else "[red]✗[/red]"
            message = result.message[:50] + "..." if len(result.message) > 50 else result.message
            plugin_table.add_row(result.plugin, status, f"{result.duration:.2f}s", message)

        console.print(plugin_table)


def _display_config(config: BuildConfig) -> None:
    """Display configuration in a formatted table."""
    table = Table(title="Pixel Build Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    # Paths
    table.add_row("Game Root", config.game_root)
    table.add_row("Assets Directory", config.assets_dir)
    table.add_row("Source Directory", config.src_dir)
    table.add_row("Output Directory", config.output_dir)

    # Build mode
    table.add_row("Production", str(config.production))
    table.add_row("Clean", str(config.clean))
    table.add_row("Plugins", ", ".join(config.plugins) or "all")

    # Output settings
    table.add_row("Compression Level", str(config.compression_level))
    table.add_row("Production Compression Level", str(config.production_compression_level))
    table.add_row("Sprite URL Prefix", config.sprite_url_prefix)

    # Watch settings
    table.add_row("Watch Debounce", f"{config.watch_debounce}s")
    table.add_row("Max Workers", str(config.max_workers))

    console.print(table)


def _display_env_vars() -> None:
    """Display available environment variables for configuration."""
    table = Table(title="Pixel Build Environment Variables")
    table.add_column("Environment Variable", style="cyan")
    table.add_column("Description", style="white")
    table.add_column("Example", style="green")

    for var_name, description, example in ENV_VARS:
        table.add_row(var_name, description, example)

    console.print(table)
    console.print("\n[dim]Set these environment variables to override configuration file settings.[/dim]")
    console.print(f"[dim]Example: export {ENV_PREFIX}PRODUCTION=true[/dim]")


if __name__ == "__main__":
    app()
