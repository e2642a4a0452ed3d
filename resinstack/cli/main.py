"""Main CLI entry point for resinstack."""

import click
from rich.console import Console

from resinstack import __version__
from resinstack.utils import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="resinstack")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """resinstack - dynamic layer heights for resin printer projects.

    Merges runs of thin, similar layers into thicker ones and reschedules
    exposures for the resulting heights.
    """
    from resinstack.config import get_settings

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging("DEBUG" if verbose else get_settings().log_level)


# Import and register command groups
from resinstack.cli.stack_cmd import stack

cli.add_command(stack)


@cli.command()
def status() -> None:
    """Show configuration."""
    from resinstack.config import get_settings

    settings = get_settings()

    console.print("[bold]resinstack Status[/bold]")
    console.print(f"Version: {__version__}")
    console.print()
    console.print("[bold]Configuration:[/bold]")
    console.print(f"  Output Directory: {settings.output_dir}")
    console.print(f"  Cache RAM: {settings.cache_ram_gb}GB")
    console.print(f"  Worker Threads: {settings.max_workers}")
    console.print(f"  Log Level: {settings.log_level}")


def main() -> None:
    """Entry point for the console script."""
    cli(obj={})


if __name__ == "__main__":
    main()
