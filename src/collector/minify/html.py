import re
from pathlib import Path

# Raw-text elements keep their bodies; style bodies are compacted separately.
_RAW_ELEMENTS = re.compile(
    r"(<(?P<tag>script|style|pre|textarea)\b[^>]*>.*?</(?P=tag)\s*>)",
    re.IGNORECASE | re.DOTALL,
)
# Conditional comments (<!--[if IE]>) are markup, not commentary.
_COMMENT = re.compile(r"<!--(?!\[if).*?-->", re.DOTALL)
_BREAK_BETWEEN_TAGS = re.compile(r">\s*\n\s*<")
_WHITESPACE = re.compile(r"\s+")
_STYLE = re.compile(r"^(?P<open><style\b[^>]*>)(?P<body>.*)(?P<close></style\s*>)$", re.IGNORECASE | re.DOTALL)


def minify_css(content: str) -> str:
    content = re.sub(r"/\*.*?\*/", "", content, flags=re.DOTALL)
    content = re.sub(r"\s+", " ", content)
    content = re.sub(r"\s*([{};,>])\s*", r"\1", content)
    content = re.sub(r":\s+", ":", content)
    content = re.sub(r";}", "}", content)
    return content.strip()


def minify_markup(content: str) -> str:
    content = _COMMENT.sub("", content)
    content = _BREAK_BETWEEN_TAGS.sub("><", content)
    return _WHITESPACE.sub(" ", content)


def minify_html(content: str) -> str:
    parts: list[str] = []
    for index, chunk in enumerate(_RAW_ELEMENTS.split(content)):
        # split() yields text, whole element, tag name, text, ...
        position = index % 3
        if position == 2:
            continue
        if position == 0:
            parts.append(minify_markup(chunk))
            continue
        style = _STYLE.match(chunk)
        if style:
            parts.append(style["open"] + minify_css(style["body"]) + style["close"])
        else:
            parts.append(chunk)
    return "".join(parts).strip()


class HtmlMinifier:
    """Conservative whitespace/comment minifier for assembled documents.

    Implements the ``Minifier`` protocol.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._encoding = encoding

    def minify(self, path: Path) -> str:
        return minify_html(path.read_text(encoding=self._encoding))
