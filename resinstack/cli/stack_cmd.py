"""CLI commands for dynamic layer heights."""

import json
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()


def config_options(func):
    """Options shared by every command that builds a run configuration."""
    options = [
        click.option("--min-layer", type=float, default=0.03, show_default=True,
                     help="Minimum layer height (mm)"),
        click.option("--max-layer", type=float, default=0.10, show_default=True,
                     help="Maximum layer height (mm)"),
        click.option("--max-erodes", type=click.IntRange(min=0), default=10, show_default=True,
                     help="Maximum erosion steps per stacking window"),
        click.option("--strip-aa", is_flag=True, help="Binarize layers before merging"),
        click.option("--reconstruct-aa", is_flag=True, help="Re-blur merged layers after stripping"),
        click.option("--exposure-type", "-e", default="linear", show_default=True,
                     type=click.Choice(["linear", "multiplier", "manual"]),
                     help="How exposures are derived from layer height"),
        click.option("--bottom-exposure", type=float, default=0.0,
                     help="Base bottom exposure (s), defaults to the project value"),
        click.option("--exposure", type=float, default=0.0,
                     help="Base normal exposure (s), defaults to the project value"),
        click.option("--bottom-step", type=float, default=0.5, show_default=True,
                     help="Bottom exposure step (s)"),
        click.option("--exposure-step", type=float, default=0.2, show_default=True,
                     help="Normal exposure step (s)"),
        click.option("--iterate-bottom", is_flag=True, help="Also step the bottom exposure"),
        click.option("--manual-table", type=click.Path(exists=True, dir_okay=False),
                     help="JSON list of {layer_height, bottom_exposure, exposure}"),
        click.option("--start", type=int, default=0, help="First layer index to process"),
        click.option("--end", type=int, default=None, help="Last layer index to process"),
        click.option("--cache-ram", type=float, default=None,
                     help="Frame cache RAM budget (GB)"),
    ]

    for option in reversed(options):
        func = option(func)
    return func


def _build_config(params: dict):
    from resinstack.config import get_settings
    from resinstack.stacking import DynamicLayerHeightConfig, ExposureItem

    manual_table = []
    if params.get("manual_table"):
        data = json.loads(Path(params["manual_table"]).read_text())
        manual_table = [ExposureItem.from_dict(item) for item in data]

    cache_ram = params.get("cache_ram")
    return DynamicLayerHeightConfig(
        cache_ram_gb=cache_ram if cache_ram is not None else get_settings().cache_ram_gb,
        minimum_layer_height=params["min_layer"],
        maximum_layer_height=params["max_layer"],
        strip_anti_aliasing=params["strip_aa"],
        reconstruct_anti_aliasing=params["reconstruct_aa"],
        maximum_erodes=params["max_erodes"],
        exposure_set_type=params["exposure_type"],
        iterate_bottom_exposure_time=params["iterate_bottom"],
        bottom_exposure_time=params["bottom_exposure"],
        exposure_time=params["exposure"],
        bottom_exposure_step=params["bottom_step"],
        exposure_step=params["exposure_step"],
        manual_exposure_table=manual_table,
        layer_index_start=params["start"],
        layer_index_end=params["end"],
    )


def _open_operation(project: str, params: dict):
    from resinstack.layers import DirectoryLayerStore
    from resinstack.stacking import DynamicLayerHeightOperation

    store = DirectoryLayerStore.open(project)
    return DynamicLayerHeightOperation(store, config=_build_config(params))


@click.group()
def stack():
    """Dynamic layer height commands."""
    pass


@stack.command()
@click.argument("project", type=click.Path(exists=True, file_okay=False))
@click.option("--output", "-o", type=click.Path(file_okay=False), help="Output project directory")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@config_options
@click.pass_context
def run(ctx: click.Context, project: str, output: Optional[str], as_json: bool, **params) -> None:
    """Merge similar layers into thicker ones.

    Examples:
        resinstack stack run my_project/
        resinstack stack run my_project/ --max-layer 0.08 -o optimized/
        resinstack stack run my_project/ --strip-aa --reconstruct-aa
    """
    from resinstack.config import get_settings
    from resinstack.stacking import OperationValidationError, ResinStackError

    settings = get_settings()
    project_path = Path(project)
    output_path = Path(output) if output else settings.output_dir / project_path.name

    try:
        operation = _open_operation(project, params)
        console.print(f"Optimizing {project_path.name}: {operation.config.summary()}")
        report = operation.execute()
        operation.store.save(output_path, max_workers=settings.max_workers)
    except OperationValidationError as e:
        console.print("[red]Invalid configuration:[/red]")
        for message in e.messages:
            console.print(f"  [red]- {message}[/red]")
        ctx.exit(1)
    except (ResinStackError, FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    if as_json:
        console.print_json(json.dumps(report.to_dict()))
        return

    console.print(Panel(
        f"[bold green]Optimization Complete[/bold green]\n\n{report}\n\n"
        f"Saved to: {output_path}",
        title="Dynamic Layer Height",
    ))


@stack.command()
@click.argument("project", type=click.Path(exists=True, file_okay=False))
@config_options
@click.pass_context
def validate(ctx: click.Context, project: str, **params) -> None:
    """Check whether a project and configuration can be processed.

    Examples:
        resinstack stack validate my_project/
        resinstack stack validate my_project/ --min-layer 0.04 --max-layer 0.12
    """
    try:
        operation = _open_operation(project, params)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    spawn_error = operation.validate_spawn()
    if spawn_error:
        console.print(f"[red]Unsupported project:[/red] {spawn_error}")
        ctx.exit(1)

    messages = operation.validate()
    if messages:
        console.print("[red]Invalid configuration:[/red]")
        for message in messages:
            console.print(f"  [red]- {message}[/red]")
        ctx.exit(1)

    store = operation.store
    console.print(Panel(
        f"[bold green]Ready[/bold green]\n\n"
        f"Layers: {store.layer_count} at {store.layer_height}mm\n"
        f"Resolution: {store.resolution[0]}x{store.resolution[1]}\n"
        f"Cache entries: {operation.cache_object_count}\n"
        f"{operation.config.summary()}",
        title="Dynamic Layer Height",
    ))


@stack.command()
@click.argument("project", type=click.Path(exists=True, file_okay=False))
@config_options
@click.pass_context
def exposures(ctx: click.Context, project: str, **params) -> None:
    """Show the exposure table for every reachable layer height.

    Examples:
        resinstack stack exposures my_project/
        resinstack stack exposures my_project/ -e multiplier --iterate-bottom
    """
    try:
        operation = _open_operation(project, params)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    operation.sync_exposure_table()
    scheduler = operation.scheduler
    table_dict = scheduler.table_dict()

    table = Table(title=f"Exposures ({scheduler.set_type.value})")
    table.add_column("Layer Height")
    table.add_column("Bottom Exposure")
    table.add_column("Exposure")

    for height in scheduler.reachable_heights():
        item = table_dict.get(height)
        if item is None:
            table.add_row(f"{height:.2f}mm", "[red]missing[/red]", "[red]missing[/red]")
            continue
        table.add_row(f"{height:.2f}mm", f"{item.bottom_exposure:.2f}s", f"{item.exposure:.2f}s")

    console.print(table)
