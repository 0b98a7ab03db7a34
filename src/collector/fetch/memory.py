import asyncio
import posixpath
from collections import Counter
from pathlib import PurePosixPath
from urllib.parse import urljoin

from collector.core.languages import detect_language_from_path
from collector.errors import ConfigurationError, FetchError, ResourceNotFoundError
from collector.fetch.resources import is_local_ref, is_remote
from collector.models import SourceUnit


class InMemoryResourceFetcher:
    """Serve resources from a dict of POSIX paths / URLs to content.

    Follows the same reference rules as ``DefaultResourceFetcher`` and records
    how often each location was read.
    """

    def __init__(self, files: dict[str, str | bytes], root: str = "/", delay: float = 0.0) -> None:
        self.files = dict(files)
        self.root = root
        self.delay = delay
        self.reads: Counter[str] = Counter()

    def locate(self, ref: str, origin: str | None = None) -> str:
        if origin is not None and is_remote(origin) and not is_remote(ref):
            return urljoin(origin, ref)
        if is_local_ref(ref):
            base = posixpath.dirname(origin) if origin is not None else self.root
            return posixpath.normpath(posixpath.join(base, ref))
        return ref

    async def get(self, ref: str, origin: str | None = None, *, binary: bool = False) -> SourceUnit:
        location = self.locate(ref, origin)
        remote = is_remote(location)
        if remote and binary:
            raise ConfigurationError(f"Binary fetch is only supported for local files: {location}")
        if self.delay:
            await asyncio.sleep(self.delay)
        self.reads[location] += 1

        try:
            content = self.files[location]
        except KeyError:
            if remote or not is_local_ref(ref):
                raise FetchError(f"Cannot fetch {location}") from None
            raise ResourceNotFoundError(f"File not found: {location}") from None

        if binary and isinstance(content, str):
            content = content.encode("utf-8")
        elif not binary and isinstance(content, bytes):
            content = content.decode("utf-8")
        language = detect_language_from_path(PurePosixPath(location))
        return SourceUnit(path=location, content=content, language=language)
