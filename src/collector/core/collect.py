import logging
import os
import tempfile
import time
from pathlib import Path

from collector.core.ports.fetcher import ResourceFetcher
from collector.core.ports.minifier import Minifier
from collector.core.resolver import Resolver
from collector.settings import CollectorSettings

logger = logging.getLogger(__name__)


async def run_collect(fetcher: ResourceFetcher, input_path: str | Path, settings: CollectorSettings) -> str:
    """Resolve an HTML entry point into one self-contained document.

    Returns the document text; nothing is written.
    """
    resolver = Resolver(
        fetcher,
        preserve_attribute=settings.preserve_attribute,
        concurrent=settings.concurrent,
    )
    logger.info("Collecting %s", input_path)
    started = time.perf_counter()
    root = await fetcher.get(str(input_path))
    html = await resolver.assembler.resolve(root)
    logger.info("Resolved %s (%d unit(s)) in %.2fs", root.path, len(resolver.cache), time.perf_counter() - started)
    return html


def write_atomic(path: Path, content: str, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``content`` so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w", encoding=encoding, dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
    ) as temp_file:
        temp_file.write(content)
    try:
        os.replace(temp_file.name, path)
    except OSError:
        Path(temp_file.name).unlink(missing_ok=True)
        raise


async def run_build(
    fetcher: ResourceFetcher,
    input_path: str | Path,
    output_path: str | Path,
    settings: CollectorSettings,
    minifier: Minifier | None = None,
) -> Path:
    """Resolve ``input_path`` and write the result (then its minified form) to ``output_path``."""
    html = await run_collect(fetcher, Path(input_path).resolve(), settings)

    out = Path(output_path)
    write_atomic(out, html, settings.encoding)
    logger.info("Wrote %s (%d bytes)", out, out.stat().st_size)

    if minifier is not None:
        write_atomic(out, minifier.minify(out), settings.encoding)
        logger.info("Minified %s (%d bytes)", out, out.stat().st_size)
    return out
