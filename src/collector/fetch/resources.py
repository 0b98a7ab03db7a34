from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from urllib.parse import urljoin, urlparse

import requests

from collector.core.languages import detect_language_from_path
from collector.errors import ConfigurationError, FetchError, ResourceNotFoundError
from collector.models import SourceUnit
from collector.settings import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

_LOCAL_PREFIXES = ("./", "../")


def is_remote(ref: str) -> bool:
    return urlparse(ref).scheme in ("http", "https")


def is_local_ref(ref: str) -> bool:
    return ref.startswith(_LOCAL_PREFIXES) or (not is_remote(ref) and Path(ref).is_absolute())


class DefaultResourceFetcher:
    """Read local files and fetch remote text resources.

    Implements the ``ResourceFetcher`` protocol. Units are memoized for the
    lifetime of the fetcher, which is one collector run.
    """

    def __init__(
        self,
        root: str | Path | None = None,
        *,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        encoding: str = "utf-8",
        session: requests.Session | None = None,
    ) -> None:
        self._root = Path(root) if root is not None else Path.cwd()
        self._timeout = timeout
        self._encoding = encoding
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = user_agent
        self._session = session
        self._units: dict[tuple[str, bool], SourceUnit] = {}

    async def get(self, ref: str, origin: str | None = None, *, binary: bool = False) -> SourceUnit:
        if origin is not None and is_remote(origin) and not is_remote(ref):
            location, remote = urljoin(origin, ref), True
        elif is_local_ref(ref):
            base = Path(origin).parent if origin is not None else self._root
            location, remote = str((base / ref).resolve()), False
        else:
            location, remote = ref, True

        key = (location, binary)
        cached = self._units.get(key)
        if cached is not None:
            return cached

        if remote:
            unit = await self._fetch_remote(location, binary)
        else:
            unit = await self._read_local(Path(location), binary)
        self._units[key] = unit
        return unit

    async def _read_local(self, path: Path, binary: bool) -> SourceUnit:
        logger.debug("Reading %s", path)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise ResourceNotFoundError(f"File not found: {path}") from None
        except OSError as exc:
            raise FetchError(f"Cannot read {path}: {exc.strerror or exc}") from None

        language = detect_language_from_path(path)
        if binary:
            return SourceUnit(path=str(path), content=data, language=language)
        try:
            text = data.decode(self._encoding)
        except UnicodeDecodeError as exc:
            raise FetchError(f"Cannot decode {path} as {self._encoding}: {exc.reason}") from None
        return SourceUnit(path=str(path), content=text, language=language)

    async def _fetch_remote(self, url: str, binary: bool) -> SourceUnit:
        if binary:
            raise ConfigurationError(f"Binary fetch is only supported for local files: {url}")
        logger.debug("Fetching %s", url)
        try:
            resp = await asyncio.to_thread(self._session.get, url, timeout=self._timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise FetchError(f"Cannot fetch {url}: {exc}") from None
        resp.encoding = resp.encoding or resp.apparent_encoding or self._encoding
        language = detect_language_from_path(Path(urlparse(url).path))
        return SourceUnit(path=url, content=resp.text, language=language)
