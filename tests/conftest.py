"""Shared fixtures and helpers for tests."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from collector.core.resolver import Resolver
from collector.fetch import InMemoryResourceFetcher
from collector.settings import CollectorSettings

_REPO_ROOT = Path(__file__).parent.parent


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# Shared unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> CollectorSettings:
    return CollectorSettings()


@pytest.fixture
def make_resolver() -> Callable[..., tuple[Resolver, InMemoryResourceFetcher]]:
    """Return a factory building a resolver over an in-memory file tree rooted at ``/``."""

    def _make(files: dict[str, str | bytes], **kwargs: Any) -> tuple[Resolver, InMemoryResourceFetcher]:
        fetcher = InMemoryResourceFetcher(files)
        return Resolver(fetcher, **kwargs), fetcher

    return _make


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """A small on-disk project with a stylesheet, a script and a text include."""
    root = tmp_path / "site"
    (root / "css").mkdir(parents=True)
    (root / "js").mkdir()
    (root / "css" / "main.css").write_text("body { color: red; }\n", encoding="utf-8")
    (root / "js" / "app.js").write_text(
        'const banner = /*?COLLECTION FROM "../banner.txt" AS STRING WITH \'json\' [*/ "" /*?]*/;\n'
        "//?COLLECTION FUNCTION 'json' (STRING -> STRING) : `json`\n",
        encoding="utf-8",
    )
    (root / "banner.txt").write_text("Hello <world>", encoding="utf-8")
    (root / "index.html").write_text(
        "<!doctype html>\n"
        "<html>\n"
        "<head>\n"
        '  <link rel="stylesheet" href="./css/main.css">\n'
        "</head>\n"
        "<body>\n"
        "  <!-- page body -->\n"
        '  <!--?COLLECTION FROM "./partial.html" AS CODE{html} [-->placeholder<!--?]-->\n'
        '  <script src="./js/app.js"></script>\n'
        "</body>\n"
        "</html>\n",
        encoding="utf-8",
    )
    (root / "partial.html").write_text("<p>partial</p>", encoding="utf-8")
    return root
