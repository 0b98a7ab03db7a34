"""Unit tests for the directive tokenizer and parser."""

import pytest

from collector.core.directives import parse_directive, parse_document, parse_kind, tokenize
from collector.core.languages import Language
from collector.errors import ConfigurationError, DirectiveSyntaxError
from collector.models import BlockClose, BlockOpen, CollectionMode, CommentSpan, FunctionDefinition


def _span(body: str) -> CommentSpan:
    return CommentSpan(start=10, end=20, body=body)


class TestTokenize:
    def test_token_forms(self) -> None:
        tokens = tokenize("FUNCTION 'up' (STRING -> STRING) : `s => s.upper()`")
        assert [(t.kind, t.value) for t in tokens] == [
            ("bare", "FUNCTION"),
            ("string", "up"),
            ("group", "STRING -> STRING"),
            ("bare", ":"),
            ("code", "s => s.upper()"),
        ]

    def test_double_quoted_string(self) -> None:
        (token,) = tokenize('"./a b.css"')
        assert token.kind == "string"
        assert token.value == "./a b.css"

    def test_longest_match_wins(self) -> None:
        # A bare token that runs past the closing quote is longer than the string.
        (token,) = tokenize("'fn'[")
        assert token.kind == "bare"
        assert token.text == "'fn'["

    def test_string_does_not_span_newlines(self) -> None:
        tokens = tokenize("'a\nb'")
        assert [t.kind for t in tokens] == ["bare", "bare"]

    def test_offsets(self) -> None:
        tokens = tokenize("  AS   STRING")
        assert [t.offset for t in tokens] == [2, 7]

    def test_empty(self) -> None:
        assert tokenize("   ") == []


class TestParseDirective:
    def test_plain_comment_is_not_a_directive(self) -> None:
        assert parse_directive(_span(" just a comment ")) is None
        assert parse_directive(_span(" ?COLLECTION FROM 'x' AS STRING [")) is None

    def test_close(self) -> None:
        directive = parse_directive(_span("?]"))
        assert isinstance(directive, BlockClose)
        assert (directive.start, directive.end) == (10, 20)

    def test_close_with_whitespace(self) -> None:
        assert isinstance(parse_directive(_span("? ] ")), BlockClose)

    def test_function_definition(self) -> None:
        directive = parse_directive(_span("?COLLECTION FUNCTION 'upper' ( STRING -> STRING ) : `s => s.upper()`"))
        assert isinstance(directive, FunctionDefinition)
        assert directive.name == "upper"
        assert directive.input_type == "STRING"
        assert directive.output_type == "STRING"
        assert directive.code == "s => s.upper()"

    def test_open_with_functions(self) -> None:
        directive = parse_directive(_span("?COLLECTION FROM \"./x.txt\" AS STRING WITH 'a' AND 'b' AND \"c\" ["))
        assert isinstance(directive, BlockOpen)
        assert directive.ref == "./x.txt"
        assert directive.kind.mode is CollectionMode.STRING
        assert directive.functions == ["a", "b", "c"]

    def test_open_without_bracket(self) -> None:
        directive = parse_directive(_span("?COLLECTION FROM \"./x.txt\" AS STRING WITH 'f'"))
        assert isinstance(directive, BlockOpen)
        assert directive.functions == ["f"]
        assert isinstance(parse_directive(_span("?COLLECTION FROM \"x\" AS BUFFER")), BlockOpen)

    def test_open_code_kind(self) -> None:
        directive = parse_directive(_span("?COLLECTION FROM './lib.js' AS CODE{js} ["))
        assert isinstance(directive, BlockOpen)
        assert directive.kind.mode is CollectionMode.CODE
        assert directive.kind.language is Language.JAVASCRIPT
        assert directive.functions == []

    @pytest.mark.parametrize(
        ("body", "message"),
        [
            ('?COLLECTION FROM "x" AS STRING WITH', "expected function name, found EOC"),
            ('?COLLECTION FROM "x" AS STRING WITH \'f\' OR', "expected 'AND' or '[', found 'OR'"),
            ('?COLLECTION FROM "x" STRING [', "expected 'AS', found 'STRING'"),
            ("?COLLECTION FROM x AS STRING [", "expected reference string, found 'x'"),
            ("?COLLECTION INCLUDE 'x'", "expected 'FUNCTION' or 'FROM', found 'INCLUDE'"),
            ("?IMPORT", "expected 'COLLECTION' or ']', found 'IMPORT'"),
            ("?", "expected 'COLLECTION' or ']', found EOC"),
            ('?COLLECTION FROM "x" AS STRING [ extra', "expected EOC, found 'extra'"),
            ("?] ]", "expected EOC, found ']'"),
            ("?COLLECTION FUNCTION 'f' (STRING) : `upper`", "expected '( TYPE -> TYPE )', found '(STRING)'"),
            ("?COLLECTION FUNCTION 'f' (A -> B) `upper`", "expected ':', found '`upper`'"),
            ("?COLLECTION FUNCTION 'f' (A -> B) : upper", "expected `code`, found 'upper'"),
        ],
    )
    def test_syntax_errors(self, body: str, message: str) -> None:
        with pytest.raises(DirectiveSyntaxError) as excinfo:
            parse_directive(_span(body))
        assert excinfo.value.message == message

    def test_unknown_kind(self) -> None:
        with pytest.raises(ConfigurationError, match="unsupported collection kind 'JSON'"):
            parse_directive(_span('?COLLECTION FROM "x" AS JSON ['))


class TestParseKind:
    def test_kinds(self) -> None:
        assert str(parse_kind("CODE{css}")) == "CODE{css}"
        assert str(parse_kind("CODE{py}")) == "CODE{python}"
        assert parse_kind("STRING").mode is CollectionMode.STRING
        assert parse_kind("BUFFER").mode is CollectionMode.BUFFER

    def test_unknown_language(self) -> None:
        with pytest.raises(ConfigurationError, match="unsupported language"):
            parse_kind("CODE{ruby}")


class TestParseDocument:
    def test_blocks_and_functions(self) -> None:
        text = (
            "//?COLLECTION FUNCTION 'up' (STRING -> STRING) : `upper`\n"
            'let a = /*?COLLECTION FROM "./a.txt" AS STRING WITH \'up\' [*/ 0 /*?]*/;\n'
            'let b = /*?COLLECTION FROM "./b.txt" AS BUFFER [*/ 0 /*?]*/;\n'
        )
        plan = parse_document(text, Language.JAVASCRIPT, "/app.js")
        assert [block.ref for block in plan.blocks] == ["./a.txt", "./b.txt"]
        first = plan.blocks[0]
        assert text[first.start : first.end] == '/*?COLLECTION FROM "./a.txt" AS STRING WITH \'up\' [*/ 0 /*?]*/'
        assert "up" in plan.registry
        assert len(plan.registry) == 1

    def test_edits_remove_definitions_outside_blocks(self) -> None:
        text = "/*?COLLECTION FUNCTION 'f' (A -> B) : `strip`*/x/*?COLLECTION FROM './y' AS STRING [*//*?]*/"
        plan = parse_document(text, Language.CSS, "/a.css")
        edits = plan.edits()
        block_start = text.index("/*?COLLECTION FROM")
        assert [(start, block is None) for start, _, block in edits] == [(0, True), (block_start, False)]

    def test_definitions_inside_block_are_registered_but_not_separately_edited(self) -> None:
        text = "/*?COLLECTION FROM './y' AS STRING [*/ /*?COLLECTION FUNCTION 'f' (A -> B) : `strip`*/ /*?]*/"
        plan = parse_document(text, Language.CSS, "/a.css")
        assert "f" in plan.registry
        assert len(plan.edits()) == 1

    def test_function_visible_before_declaration(self) -> None:
        text = "# ?x\n#?COLLECTION FROM './y' AS STRING WITH 'late' [\n#?]\n#?COLLECTION FUNCTION 'late' (A -> B) : `lower`\n"
        plan = parse_document(text, Language.PYTHON, "/tool.py")
        assert "late" in plan.registry

    def test_unterminated_block(self) -> None:
        text = "body {}\n/*?COLLECTION FROM './y' AS STRING [*/"
        with pytest.raises(DirectiveSyntaxError, match="unterminated collection block") as excinfo:
            parse_document(text, Language.CSS, "/a.css")
        assert excinfo.value.path == "/a.css"
        assert (excinfo.value.line, excinfo.value.column) == (2, 1)

    def test_nested_block(self) -> None:
        text = "<!--?COLLECTION FROM './a' AS STRING [--><!--?COLLECTION FROM './b' AS STRING [--><!--?]--><!--?]-->"
        with pytest.raises(DirectiveSyntaxError, match="nested collection block"):
            parse_document(text, Language.HTML, "/index.html")

    def test_unmatched_close(self) -> None:
        with pytest.raises(DirectiveSyntaxError, match="unmatched block close"):
            parse_document("a /*?]*/", Language.CSS, "/a.css")

    def test_duplicate_function(self) -> None:
        text = "#?COLLECTION FUNCTION 'f' (A -> B) : `upper`\n#?COLLECTION FUNCTION 'f' (A -> B) : `lower`\n"
        with pytest.raises(DirectiveSyntaxError, match="already defined") as excinfo:
            parse_document(text, Language.PYTHON, "/x.py")
        assert excinfo.value.line == 2

    def test_error_location_is_rendered(self) -> None:
        text = "\n\n  //?COLLECTION FROM \"x\" AS STRING WITH"
        with pytest.raises(DirectiveSyntaxError) as excinfo:
            parse_document(text, Language.JAVASCRIPT, "/app.js")
        assert str(excinfo.value) == "/app.js:3:3: expected function name, found EOC"

    def test_no_directives(self) -> None:
        plan = parse_document("/* just css */ a { b: c }", Language.CSS, "/a.css")
        assert plan.blocks == []
        assert plan.edits() == []
