from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine, Iterable
from pathlib import Path
from typing import Any

from watchfiles import DefaultFilter, awatch

logger = logging.getLogger(__name__)

# Editor swap files, atomic-write temporaries and other dotfiles.
_HIDDEN = r"^\."


def build_filter(ignore: Iterable[str | Path] = ()) -> DefaultFilter:
    """watchfiles' default filter, extended to skip dotfiles and ``ignore`` paths."""
    return DefaultFilter(
        ignore_entity_patterns=(*DefaultFilter.ignore_entity_patterns, _HIDDEN),
        ignore_paths=[str(Path(p).resolve()) for p in ignore],
    )


class WatchfilesWatcher:
    """Rebuild trigger for a source directory.

    Implements the ``FileWatcherPort`` protocol. Each debounced batch of
    changes that passes the filter is handed to ``on_change``; a failing
    callback is logged and the watch goes on.
    """

    def __init__(
        self,
        directory: str | Path,
        on_change: Callable[[set[Path]], Coroutine[Any, Any, None]],
        ignore: Iterable[str | Path] = (),
    ) -> None:
        self._directory = Path(directory)
        self._on_change = on_change
        self.watch_filter = build_filter(ignore)
        self._stop_event = asyncio.Event()
        self._runner: asyncio.Task[None] | None = None
        self.batches = 0

    async def start(self) -> None:
        if self._runner is not None:
            return
        self._stop_event.clear()
        self._runner = asyncio.create_task(self._run(), name=f"watch {self._directory}")
        logger.info("Watching %s for changes", self._directory)

    async def wait(self) -> None:
        runner = self._runner
        if runner is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await runner

    async def stop(self) -> None:
        runner, self._runner = self._runner, None
        if runner is None:
            return
        self._stop_event.set()
        runner.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await runner
        logger.info("Stopped watching %s after %d batch(es)", self._directory, self.batches)

    async def _run(self) -> None:
        changes = awatch(self._directory, watch_filter=self.watch_filter, stop_event=self._stop_event)
        async for batch in changes:
            paths = {Path(raw) for _, raw in batch}
            if not paths:
                continue
            self.batches += 1
            logger.info("Rebuilding after %d changed file(s)", len(paths))
            try:
                await self._on_change(paths)
            except Exception:
                logger.exception("Rebuild callback failed for %s", sorted(map(str, paths)))
