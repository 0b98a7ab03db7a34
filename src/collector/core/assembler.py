from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING

from bs4 import BeautifulSoup, Tag
from bs4.element import Script, Stylesheet

from collector.core.languages import Language
from collector.errors import CollectorError
from collector.models import SourceUnit

if TYPE_CHECKING:
    from collector.core.resolver import Resolver

logger = logging.getLogger(__name__)

_LINK_DROPPED_ATTRS = ("href", "rel", "type")
_SCRIPT_DROPPED_ATTRS = ("src", "crossorigin", "integrity")


class HtmlAssembler:
    """Expand directives in an HTML unit, then inline its stylesheets and scripts.

    ``<link href>`` becomes ``<style>`` and ``<script src>`` gets the script
    body, each resolved through the owning resolver. Elements carrying the
    preserve attribute are left untouched.
    """

    def __init__(self, resolver: Resolver, preserve_attribute: str = "always-keep") -> None:
        self._resolver = resolver
        self.preserve_attribute = preserve_attribute

    async def resolve(self, unit: SourceUnit, *, requester: str | None = None) -> str:
        return await self._resolver.resolve(unit, Language.HTML, requester=requester)

    def _targets(self, soup: BeautifulSoup, name: str, ref_attr: str) -> list[Tag]:
        return [
            tag
            for tag in soup.find_all(name)
            if isinstance(tag, Tag) and tag.has_attr(ref_attr) and not tag.has_attr(self.preserve_attribute)
        ]

    async def inline(self, html: str, unit: SourceUnit) -> str:
        soup = BeautifulSoup(html, "html.parser")
        links = self._targets(soup, "link", "href")
        scripts = self._targets(soup, "script", "src")
        if not links and not scripts:
            return html

        styles = await self._resolver.gather(
            [partial(self._resolve_ref, unit, str(tag["href"]), Language.CSS) for tag in links]
        )
        bodies = await self._resolver.gather(
            [partial(self._resolve_ref, unit, str(tag["src"]), Language.JAVASCRIPT) for tag in scripts]
        )

        for link, css in zip(links, styles, strict=True):
            attrs = {key: value for key, value in link.attrs.items() if key not in _LINK_DROPPED_ATTRS}
            style = soup.new_tag("style", attrs=attrs)
            style.append(Stylesheet(css))
            link.replace_with(style)

        for script, js in zip(scripts, bodies, strict=True):
            for attr in _SCRIPT_DROPPED_ATTRS:
                script.attrs.pop(attr, None)
            script.clear()
            script.append(Script(js))

        logger.debug("Inlined %d stylesheet(s) and %d script(s) into %s", len(links), len(scripts), unit.path)
        return str(soup)

    async def _resolve_ref(self, unit: SourceUnit, ref: str, language: Language) -> str:
        try:
            target = await self._resolver.fetcher.get(ref, unit.path)
            return await self._resolver.resolve(target, language, requester=unit.path)
        except CollectorError as exc:
            raise exc.locate(unit.path)
