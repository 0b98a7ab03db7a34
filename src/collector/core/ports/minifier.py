from pathlib import Path
from typing import Protocol


class Minifier(Protocol):
    def minify(self, path: Path) -> str: ...
