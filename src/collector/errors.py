from __future__ import annotations


def line_and_column(text: str, offset: int) -> tuple[int, int]:
    """Return the 1-based (line, column) of ``offset`` in ``text``."""
    line = text.count("\n", 0, offset) + 1
    column = offset - (text.rfind("\n", 0, offset) + 1) + 1
    return line, column


class CollectorError(Exception):
    """Base class for every failure that aborts a collector run.

    The location is attached by the innermost frame that knows it; outer
    frames call :meth:`locate` which leaves an existing location alone.
    """

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.line = line
        self.column = column

    def locate(self, path: str, text: str | None = None, offset: int | None = None) -> CollectorError:
        if self.path is not None:
            return self
        self.path = path
        if text is not None and offset is not None:
            self.line, self.column = line_and_column(text, offset)
        return self

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        if self.line is None:
            return f"{self.path}: {self.message}"
        return f"{self.path}:{self.line}:{self.column}: {self.message}"


class DirectiveSyntaxError(CollectorError):
    """Malformed, unterminated, nested or unmatched directive."""


class UnknownReferenceError(CollectorError):
    """A block names a transform the document never declared."""


class ResourceNotFoundError(CollectorError):
    pass


class FetchError(CollectorError):
    pass


class ConfigurationError(CollectorError):
    """Unsupported language, collection kind or setting."""


class CycleError(CollectorError):
    def __init__(self, chain: list[str]) -> None:
        super().__init__("inclusion cycle: " + " -> ".join(chain))
        self.chain = chain


class TransformError(CollectorError):
    """Transform code that is rejected by the sandbox or fails while running."""
