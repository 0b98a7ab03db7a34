from typing import Protocol

from collector.models import SourceUnit


class ResourceFetcher(Protocol):
    async def get(self, ref: str, origin: str | None = None, *, binary: bool = False) -> SourceUnit: ...
