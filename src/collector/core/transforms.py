"""Function registry and the restricted evaluator for user-declared transforms.

Transform code comes from the documents being bundled, so it is never run as
arbitrary Python. A transform is either the name of a built-in, or a
one-parameter expression (``s => s.upper()`` or ``lambda s: s.upper()``)
whose syntax tree is checked against a closed whitelist before it is
compiled.
"""

from __future__ import annotations

import ast
import base64
import html
import json
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from collector.errors import CollectorError, DirectiveSyntaxError, TransformError, UnknownReferenceError
from collector.models import FunctionDefinition

logger = logging.getLogger(__name__)

Value = str | bytes
Transform = Callable[[Any], Any]


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


def _base64(value: Any) -> str:
    return base64.b64encode(_as_bytes(value)).decode("ascii")


def _data_uri(value: Any, mime: str = "application/octet-stream") -> str:
    return f"data:{mime};base64,{_base64(value)}"


BUILTIN_TRANSFORMS: dict[str, Transform] = {
    "base64": _base64,
    "collapse_whitespace": lambda value: re.sub(r"\s+", " ", _text(value)).strip(),
    "data_uri": _data_uri,
    "html_escape": lambda value: html.escape(_text(value)),
    "json": lambda value: json.dumps(_text(value)),
    "lower": lambda value: _text(value).lower(),
    "strip": lambda value: _text(value).strip(),
    "text": _text,
    "upper": lambda value: _text(value).upper(),
}

_SAFE_CALLABLES: dict[str, Callable[..., Any]] = {"len": len, "str": str}

# Methods whose result is at most a small constant multiple of their input.
# ``replace`` is further limited to constant arguments that never lengthen the text.
_ALLOWED_METHODS = frozenset(
    {
        "capitalize",
        "casefold",
        "count",
        "decode",
        "encode",
        "endswith",
        "find",
        "lower",
        "lstrip",
        "removeprefix",
        "removesuffix",
        "replace",
        "rstrip",
        "split",
        "splitlines",
        "startswith",
        "strip",
        "swapcase",
        "title",
        "upper",
    }
)

_ALLOWED_NODES: tuple[type[ast.AST], ...] = (
    ast.Name,
    ast.Load,
    ast.Constant,
    ast.Call,
    ast.Attribute,
    ast.keyword,
    ast.BinOp,
    ast.Add,
    ast.Subscript,
    ast.Slice,
    ast.UnaryOp,
    ast.USub,
    ast.Not,
    ast.IfExp,
    ast.Compare,
    ast.Eq,
    ast.NotEq,
    ast.Lt,
    ast.LtE,
    ast.Gt,
    ast.GtE,
    ast.In,
    ast.NotIn,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.JoinedStr,
    ast.FormattedValue,
    ast.Tuple,
    ast.List,
)

_ARROW = re.compile(r"^\s*(?P<param>[A-Za-z_]\w*)\s*=>\s*(?P<body>\S.*?)\s*$", re.DOTALL)

# JavaScript string methods accepted in arrow transforms, by Python name.
_JS_METHODS = {
    "endsWith": "endswith",
    "startsWith": "startswith",
    "toLowerCase": "lower",
    "toUpperCase": "upper",
    "trim": "strip",
    "trimEnd": "rstrip",
    "trimStart": "lstrip",
}


class _JsMethodRewriter(ast.NodeTransformer):
    """Rename JavaScript string methods to their Python counterparts.

    ``x.includes(y)`` becomes ``y in x``.
    """

    def visit_Attribute(self, node: ast.Attribute) -> ast.AST:
        self.generic_visit(node)
        if node.attr in _JS_METHODS:
            node.attr = _JS_METHODS[node.attr]
        return node

    def visit_Call(self, node: ast.Call) -> ast.AST:
        self.generic_visit(node)
        func = node.func
        if isinstance(func, ast.Attribute) and func.attr == "includes" and len(node.args) == 1 and not node.keywords:
            return ast.copy_location(ast.Compare(left=node.args[0], ops=[ast.In()], comparators=[func.value]), node)
        return node


def _is_shrinking_replace(node: ast.Call) -> bool:
    if node.keywords or len(node.args) != 2:
        return False
    old, new = node.args
    if not (isinstance(old, ast.Constant) and isinstance(new, ast.Constant)):
        return False
    if type(old.value) is not type(new.value) or not isinstance(old.value, str | bytes):
        return False
    return 0 < len(old.value) and len(new.value) <= len(old.value)


class TransformValidator(ast.NodeVisitor):
    """Collect every construct of a transform expression outside the whitelist."""

    def __init__(self, param: str) -> None:
        self.errors: list[str] = []
        self.names = {param, *BUILTIN_TRANSFORMS, *_SAFE_CALLABLES}

    def generic_visit(self, node: ast.AST) -> None:
        if not isinstance(node, _ALLOWED_NODES):
            self.errors.append(f"'{type(node).__name__}' is not allowed")
            return
        super().generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id not in self.names:
            self.errors.append(f"unknown name '{node.id}'")

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr not in _ALLOWED_METHODS:
            self.errors.append(f"attribute '{node.attr}' is not allowed")
            return
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        func = node.func
        if isinstance(func, ast.Attribute) and func.attr == "replace" and not _is_shrinking_replace(node):
            self.errors.append("replace() needs constant arguments, a non-empty old value and no longer new value")
            return
        self.generic_visit(node)

    def visit_FormattedValue(self, node: ast.FormattedValue) -> None:
        if node.format_spec is not None:
            self.errors.append("format specifications are not allowed")
            return
        self.generic_visit(node)


def _parse_lambda(code: str) -> ast.Expression:
    arrow = _ARROW.match(code)
    source = f"lambda {arrow['param']}: ({arrow['body']})" if arrow else code.strip()
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise TransformError(f"invalid transform code `{code}`: {exc.msg}") from None
    if not isinstance(tree.body, ast.Lambda):
        raise TransformError(f"transform `{code}` must be a built-in name or a one-parameter function")
    return tree


def compile_transform(code: str) -> Transform:
    code = code.strip()
    if code in BUILTIN_TRANSFORMS:
        return BUILTIN_TRANSFORMS[code]

    tree = ast.fix_missing_locations(_JsMethodRewriter().visit(_parse_lambda(code)))
    func = tree.body
    assert isinstance(func, ast.Lambda)
    args = func.args
    if len(args.args) != 1 or args.posonlyargs or args.kwonlyargs or args.vararg or args.kwarg or args.defaults:
        raise TransformError(f"transform `{code}` must take exactly one parameter")

    validator = TransformValidator(args.args[0].arg)
    validator.visit(func.body)
    if validator.errors:
        raise TransformError(f"transform `{code}` rejected: {'; '.join(validator.errors)}")

    namespace: dict[str, Any] = {"__builtins__": {}, **_SAFE_CALLABLES, **BUILTIN_TRANSFORMS}
    return eval(compile(tree, "<transform>", "eval"), namespace)  # noqa: S307


@dataclass(frozen=True)
class FunctionEntry:
    name: str
    input_type: str
    output_type: str
    code: str
    impl: Transform

    def __call__(self, value: Value) -> Value:
        try:
            result = self.impl(value)
        except CollectorError:
            raise
        except Exception as exc:
            raise TransformError(f"transform '{self.name}' failed: {exc}") from exc
        if not isinstance(result, str | bytes):
            raise TransformError(f"transform '{self.name}' returned {type(result).__name__}, expected text or bytes")
        return result


class FunctionRegistry:
    """Transforms declared by one document, keyed by name."""

    def __init__(self) -> None:
        self._entries: dict[str, FunctionEntry] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def define(self, definition: FunctionDefinition) -> FunctionEntry:
        if definition.name in self._entries:
            raise DirectiveSyntaxError(f"function '{definition.name}' is already defined")
        entry = FunctionEntry(
            name=definition.name,
            input_type=definition.input_type,
            output_type=definition.output_type,
            code=definition.code,
            impl=compile_transform(definition.code),
        )
        self._entries[definition.name] = entry
        logger.debug("Registered transform %s (%s -> %s)", entry.name, entry.input_type, entry.output_type)
        return entry

    def lookup(self, name: str) -> FunctionEntry:
        try:
            return self._entries[name]
        except KeyError:
            raise UnknownReferenceError(f"unknown function '{name}'") from None

    def apply(self, names: Iterable[str], value: Value) -> Value:
        for name in names:
            value = self.lookup(name)(value)
        return value
