"""Recursive, memoized expansion of ``?COLLECTION`` blocks."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from functools import partial
from typing import TypeVar

from collector.core.assembler import HtmlAssembler
from collector.core.directives import DocumentPlan, parse_document
from collector.core.languages import Language
from collector.core.ports.fetcher import ResourceFetcher
from collector.errors import CollectorError, ConfigurationError, CycleError
from collector.models import CollectionBlock, CollectionMode, SourceUnit

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResolutionCache:
    """Path -> resolution task, scoped to one run.

    Every distinct path is resolved at most once; concurrent requests for the
    same path await the same task. Each wait of one resolution on another is
    recorded so that an inclusion cycle fails with ``CycleError`` instead of
    waiting on itself. A path is resolved under a single language.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[str]] = {}
        self._waits: dict[str, Counter[str]] = {}
        self._languages: dict[str, Language] = {}

    def __contains__(self, path: object) -> bool:
        return path in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def result(self, path: str) -> str | None:
        task = self._tasks.get(path)
        if task is None or not task.done() or task.cancelled() or task.exception() is not None:
            return None
        return task.result()

    def _wait_chain(self, start: str, goal: str) -> list[str] | None:
        stack = [(start, [start])]
        seen: set[str] = set()
        while stack:
            node, trail = stack.pop()
            if node == goal:
                return trail
            if node in seen:
                continue
            seen.add(node)
            for waited in self._waits.get(node, ()):
                stack.append((waited, [*trail, waited]))
        return None

    async def resolve(
        self,
        path: str,
        factory: Callable[[], Awaitable[str]],
        requester: str | None = None,
        *,
        language: Language | None = None,
    ) -> str:
        if requester is not None:
            chain = self._wait_chain(path, requester)
            if chain is not None:
                raise CycleError([requester, *chain])

        if language is not None:
            known = self._languages.setdefault(path, language)
            if known is not language:
                raise ConfigurationError(f"{path} is already collected as {known}, not {language}")

        task = self._tasks.get(path)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[path] = task
        else:
            logger.debug("Cache hit for %s", path)

        if requester is None:
            return await asyncio.shield(task)

        waits = self._waits.setdefault(requester, Counter())
        waits[path] += 1
        try:
            return await asyncio.shield(task)
        finally:
            waits[path] -= 1
            if waits[path] <= 0:
                del waits[path]


def _as_text(value: str | bytes) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def splice(text: str, plan: DocumentPlan, values: dict[int, str | bytes]) -> str:
    """Rebuild ``text`` with every block replaced by ``values[block.start]``.

    Offsets always refer to the original text; output goes to a fresh buffer.
    """
    parts: list[str] = []
    cursor = 0
    for start, end, block in plan.edits():
        parts.append(text[cursor:start])
        if block is not None:
            parts.append(_as_text(values[block.start]))
        cursor = end
    parts.append(text[cursor:])
    return "".join(parts)


class Resolver:
    def __init__(
        self,
        fetcher: ResourceFetcher,
        cache: ResolutionCache | None = None,
        *,
        preserve_attribute: str = "always-keep",
        concurrent: bool = True,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache if cache is not None else ResolutionCache()
        self.concurrent = concurrent
        self.assembler = HtmlAssembler(self, preserve_attribute=preserve_attribute)

    async def resolve(self, unit: SourceUnit, language: Language, *, requester: str | None = None) -> str:
        return await self.cache.resolve(
            unit.path, partial(self._resolve_unit, unit, language), requester=requester, language=language
        )

    async def gather(self, jobs: list[Callable[[], Awaitable[T]]]) -> list[T]:
        """Run independent jobs; the first failure in job order is raised."""
        if not self.concurrent:
            return [await job() for job in jobs]
        results = await asyncio.gather(*(job() for job in jobs), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return results  # type: ignore[return-value]

    async def _resolve_unit(self, unit: SourceUnit, language: Language) -> str:
        text = unit.text
        plan = parse_document(text, language, unit.path)
        logger.debug("Resolving %s as %s (%d block(s))", unit.path, language, len(plan.blocks))

        values = await self.gather([partial(self._resolve_block, unit, text, plan, block) for block in plan.blocks])
        output = splice(text, plan, {block.start: value for block, value in zip(plan.blocks, values, strict=True)})

        if language is Language.HTML:
            output = await self.assembler.inline(output, unit)
        return output

    async def _resolve_block(
        self, unit: SourceUnit, text: str, plan: DocumentPlan, block: CollectionBlock
    ) -> str | bytes:
        mode = block.kind.mode
        try:
            target = await self.fetcher.get(block.ref, unit.path, binary=mode is CollectionMode.BUFFER)
            value: str | bytes
            if mode is CollectionMode.CODE:
                assert block.kind.language is not None
                if block.kind.language is Language.HTML:
                    value = await self.assembler.resolve(target, requester=unit.path)
                else:
                    value = await self.resolve(target, block.kind.language, requester=unit.path)
            elif mode is CollectionMode.STRING:
                value = target.text
            else:
                value = target.content
            return plan.registry.apply(block.functions, value)
        except CollectorError as exc:
            raise exc.locate(unit.path, text, block.start)
