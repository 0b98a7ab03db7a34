import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from collector.core.collect import run_build
from collector.errors import CollectorError
from collector.fetch import DefaultResourceFetcher
from collector.minify.html import HtmlMinifier
from collector.settings import CollectorSettings, get_settings
from collector.watcher.watchfiles_adapter import WatchfilesWatcher

app = typer.Typer(
    name="collector",
    help="Collector: bundle an HTML entry point and everything it references into one file.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console(stderr=True)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


async def _build(input_file: Path, output_file: Path, settings: CollectorSettings, minify: bool) -> Path:
    fetcher = DefaultResourceFetcher(
        input_file.resolve().parent,
        timeout=settings.fetch_timeout,
        user_agent=settings.user_agent,
        encoding=settings.encoding,
    )
    minifier = HtmlMinifier(settings.encoding) if minify else None
    return await run_build(fetcher, input_file, output_file, settings, minifier)


async def _watch(input_file: Path, output_file: Path, settings: CollectorSettings, minify: bool) -> None:
    async def _rebuild(paths: set[Path]) -> None:
        try:
            await _build(input_file, output_file, settings, minify)
        except CollectorError as exc:
            console.print(f"[red]Build failed:[/red] {escape(str(exc))}")
            return
        console.print(f"[green]Rebuilt[/green] {output_file}")

    watcher = WatchfilesWatcher(input_file.resolve().parent, _rebuild, ignore=[output_file])
    await watcher.start()
    try:
        await watcher.wait()
    finally:
        await watcher.stop()


@app.command(context_settings={"help_option_names": ["-h", "--help"]})
def collect(
    input_file: Annotated[Path, typer.Argument(help="HTML entry point.", exists=True, dir_okay=False)],
    output_file: Annotated[Path, typer.Argument(help="Where to write the bundled document.")],
    minify: Annotated[bool, typer.Option("--minify/--no-minify", help="Minify the written document.")] = True,
    watch: Annotated[bool, typer.Option(help="Rebuild whenever a file next to the entry point changes.")] = False,
    timeout: Annotated[float | None, typer.Option(help="Per-request timeout for remote fetches (s).")] = None,
    preserve_attribute: Annotated[
        str | None, typer.Option(help="Attribute that keeps a <link>/<script> from being inlined.")
    ] = None,
    sequential: Annotated[bool, typer.Option(help="Resolve collection blocks one at a time.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log every resolved unit.")] = False,
) -> None:
    """Resolve INPUT_FILE's directives, inline its stylesheets and scripts, and write OUTPUT_FILE."""
    _configure_logging(verbose)
    try:
        settings = get_settings(
            fetch_timeout=timeout,
            preserve_attribute=preserve_attribute,
            concurrent=False if sequential else None,
        )
        written = asyncio.run(_build(input_file, output_file, settings, minify))
    except CollectorError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from None
    console.print(f"[green]Wrote[/green] {written}")

    if watch:
        try:
            asyncio.run(_watch(input_file, output_file, settings, minify))
        except KeyboardInterrupt:
            console.print("Stopped.")


def main() -> None:
    app()
