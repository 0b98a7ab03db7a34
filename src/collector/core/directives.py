"""Tokenizer and parser for the ``?COLLECTION`` directive language.

A comment is a directive when its body starts with ``?``::

    ?COLLECTION FUNCTION 'name' ( TYPE -> TYPE ) : `code`
    ?COLLECTION FROM "ref" AS KIND [ WITH 'fn' [ AND 'fn' ]... ] [
    ?]
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from collector.core.languages import Language, normalize_language
from collector.core.scanner import scan
from collector.core.transforms import FunctionRegistry
from collector.errors import CollectorError, ConfigurationError, DirectiveSyntaxError
from collector.models import (
    BlockClose,
    BlockOpen,
    CollectionBlock,
    CollectionKind,
    CollectionMode,
    CommentSpan,
    Directive,
    FunctionDefinition,
)

END_OF_COMMENT = "EOC"

_TOKEN_FORMS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("group", re.compile(r"\([^)]*\)")),
    ("code", re.compile(r"`[^`]*`")),
    ("string", re.compile(r"\"[^\"\n]*\"|'[^'\n]*'")),
    ("bare", re.compile(r"\S+")),
)
_WHITESPACE = re.compile(r"\s*")
_CODE_KIND = re.compile(r"^CODE\{(?P<language>[^}]*)\}$")


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    offset: int

    @property
    def value(self) -> str:
        if self.kind == "bare":
            return self.text
        return self.text[1:-1]


def tokenize(source: str) -> list[Token]:
    """Split a directive body into tokens; the longest form wins at each position."""
    tokens: list[Token] = []
    pos = _WHITESPACE.match(source).end()  # type: ignore[union-attr]
    while pos < len(source):
        best: tuple[str, re.Match[str]] | None = None
        for kind, pattern in _TOKEN_FORMS:
            match = pattern.match(source, pos)
            if match and (best is None or match.end() > best[1].end()):
                best = (kind, match)
        assert best is not None
        kind, match = best
        tokens.append(Token(kind=kind, text=match.group(), offset=pos))
        pos = _WHITESPACE.match(source, match.end()).end()  # type: ignore[union-attr]
    return tokens


def _describe(token: Token | None) -> str:
    return END_OF_COMMENT if token is None else f"'{token.text}'"


class _TokenStream:
    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._pos = 0

    def _error(self, expected: str, found: Token | None) -> DirectiveSyntaxError:
        return DirectiveSyntaxError(f"expected {expected}, found {_describe(found)}")

    def next(self, expected: str) -> Token:
        if self._pos >= len(self._tokens):
            raise self._error(expected, None)
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def next_or_none(self) -> Token | None:
        if self._pos >= len(self._tokens):
            return None
        return self.next("")

    def expect_text(self, *choices: str) -> Token:
        expected = " or ".join(f"'{choice}'" for choice in choices)
        token = self.next(expected)
        if token.kind != "bare" or token.text not in choices:
            raise self._error(expected, token)
        return token

    def expect_kind(self, kind: str, expected: str) -> Token:
        token = self.next(expected)
        if token.kind != kind:
            raise self._error(expected, token)
        return token

    def expect_end(self) -> None:
        if self._pos < len(self._tokens):
            raise self._error(END_OF_COMMENT, self._tokens[self._pos])

    def unexpected(self, expected: str, token: Token) -> DirectiveSyntaxError:
        return self._error(expected, token)


def parse_kind(text: str) -> CollectionKind:
    code = _CODE_KIND.match(text)
    if code:
        try:
            language = normalize_language(code["language"])
        except ConfigurationError:
            raise ConfigurationError(f"unsupported language in collection kind '{text}'") from None
        return CollectionKind(mode=CollectionMode.CODE, language=language)
    if text in (CollectionMode.STRING, CollectionMode.BUFFER):
        return CollectionKind(mode=CollectionMode(text))
    raise ConfigurationError(f"unsupported collection kind '{text}'")


def _parse_signature(stream: _TokenStream) -> tuple[str, str]:
    token = stream.expect_kind("group", "'( TYPE -> TYPE )'")
    parts = [part.strip() for part in token.value.split("->")]
    if len(parts) != 2 or not all(parts):
        raise stream.unexpected("'( TYPE -> TYPE )'", token)
    return parts[0], parts[1]


def _parse_function(stream: _TokenStream, span: CommentSpan) -> FunctionDefinition:
    name = stream.expect_kind("string", "function name").value
    input_type, output_type = _parse_signature(stream)
    stream.expect_text(":")
    code = stream.expect_kind("code", "`code`").value
    stream.expect_end()
    return FunctionDefinition(
        name=name,
        input_type=input_type,
        output_type=output_type,
        code=code,
        start=span.start,
        end=span.end,
    )


def _parse_open(stream: _TokenStream, span: CommentSpan) -> BlockOpen:
    ref = stream.expect_kind("string", "reference string").value
    stream.expect_text("AS")
    kind = parse_kind(stream.next("collection kind").text)

    # The trailing "[" may be left out: the directive then ends the comment.
    functions: list[str] = []
    expected = "'WITH' or '['"
    token = stream.next_or_none()
    if token is not None and token.kind == "bare" and token.text == "WITH":
        expected = "'AND' or '['"
        functions.append(stream.expect_kind("string", "function name").value)
        token = stream.next_or_none()
        while token is not None and token.kind == "bare" and token.text == "AND":
            functions.append(stream.expect_kind("string", "function name").value)
            token = stream.next_or_none()
    if token is not None:
        if token.kind != "bare" or token.text != "[":
            raise stream.unexpected(expected, token)
        stream.expect_end()
    return BlockOpen(ref=ref, kind=kind, functions=functions, start=span.start, end=span.end)


def parse_directive(span: CommentSpan) -> Directive | None:
    """Parse one comment; returns ``None`` when it is an ordinary comment."""
    if not span.body.startswith("?"):
        return None

    stream = _TokenStream(tokenize(span.body[1:]))
    first = stream.next("'COLLECTION' or ']'")
    if first.kind == "bare" and first.text == "]":
        stream.expect_end()
        return BlockClose(start=span.start, end=span.end)
    if first.kind != "bare" or first.text != "COLLECTION":
        raise stream.unexpected("'COLLECTION' or ']'", first)

    verb = stream.expect_text("FUNCTION", "FROM")
    if verb.text == "FUNCTION":
        return _parse_function(stream, span)
    return _parse_open(stream, span)


@dataclass
class DocumentPlan:
    """Directive blocks and transforms found in one document."""

    blocks: list[CollectionBlock] = field(default_factory=list)
    definitions: list[FunctionDefinition] = field(default_factory=list)
    registry: FunctionRegistry = field(default_factory=FunctionRegistry)

    def edits(self) -> list[tuple[int, int, CollectionBlock | None]]:
        """Spans of the original text to replace, in document order.

        Each block is replaced by its resolved value; function definitions
        outside blocks are removed.
        """
        edits: list[tuple[int, int, CollectionBlock | None]] = [(b.start, b.end, b) for b in self.blocks]
        for definition in self.definitions:
            if not any(b.start <= definition.start < b.end for b in self.blocks):
                edits.append((definition.start, definition.end, None))
        edits.sort(key=lambda edit: edit[0])
        return edits


def parse_document(text: str, language: Language, path: str) -> DocumentPlan:
    plan = DocumentPlan()
    pending: BlockOpen | None = None
    directive_end = 0

    for span in scan(text, language):
        # Comment look-alikes inside a directive, such as "//" in a URL, are not directives.
        if span.start < directive_end:
            continue
        try:
            directive = parse_directive(span)
        except CollectorError as exc:
            raise exc.locate(path, text, span.start) from None
        if directive is None:
            continue
        directive_end = span.end

        if isinstance(directive, FunctionDefinition):
            plan.definitions.append(directive)
        elif isinstance(directive, BlockOpen):
            if pending is not None:
                raise DirectiveSyntaxError("nested collection block").locate(path, text, directive.start)
            pending = directive
        else:
            if pending is None:
                raise DirectiveSyntaxError("unmatched block close").locate(path, text, directive.start)
            plan.blocks.append(
                CollectionBlock(
                    ref=pending.ref,
                    kind=pending.kind,
                    functions=pending.functions,
                    start=pending.start,
                    end=directive.end,
                )
            )
            pending = None

    if pending is not None:
        raise DirectiveSyntaxError("unterminated collection block").locate(path, text, pending.start)

    for definition in plan.definitions:
        try:
            plan.registry.define(definition)
        except CollectorError as exc:
            raise exc.locate(path, text, definition.start) from None

    return plan
