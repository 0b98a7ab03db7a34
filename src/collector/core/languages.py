import re
from enum import StrEnum
from pathlib import PurePath

from collector.errors import ConfigurationError


class Language(StrEnum):
    CSS = "css"
    HTML = "html"
    JAVASCRIPT = "javascript"
    PYTHON = "python"


_LANGUAGE_ALIASES = {
    "css": Language.CSS,
    "htm": Language.HTML,
    "html": Language.HTML,
    "javascript": Language.JAVASCRIPT,
    "js": Language.JAVASCRIPT,
    "py": Language.PYTHON,
    "python": Language.PYTHON,
}

_EXTENSION_LANGUAGE_MAP = {
    ".cjs": Language.JAVASCRIPT,
    ".css": Language.CSS,
    ".htm": Language.HTML,
    ".html": Language.HTML,
    ".js": Language.JAVASCRIPT,
    ".mjs": Language.JAVASCRIPT,
    ".py": Language.PYTHON,
}

# Each pattern captures the comment text between its delimiters as "body".
_BLOCK_COMMENT = re.compile(r"/\*(?P<body>.*?)\*/", re.DOTALL)
_SLASH_LINE_COMMENT = re.compile(r"//(?P<body>[^\n]*)")
_HASH_LINE_COMMENT = re.compile(r"#(?P<body>[^\n]*)")
_HTML_COMMENT = re.compile(r"<!--(?P<body>.*?)-->", re.DOTALL)

_COMMENT_GRAMMARS: dict[Language, tuple[re.Pattern[str], ...]] = {
    Language.CSS: (_BLOCK_COMMENT,),
    Language.HTML: (_HTML_COMMENT,),
    Language.JAVASCRIPT: (_SLASH_LINE_COMMENT, _BLOCK_COMMENT),
    Language.PYTHON: (_HASH_LINE_COMMENT,),
}


def normalize_language(language: str) -> Language:
    normalized = language.strip().lower()
    resolved = _LANGUAGE_ALIASES.get(normalized)
    if resolved is None:
        supported = sorted(str(lang) for lang in Language)
        raise ConfigurationError(f"Unsupported language '{language}'. Supported: {supported}")
    return resolved


def detect_language_from_path(file_path: PurePath) -> Language | None:
    return _EXTENSION_LANGUAGE_MAP.get(file_path.suffix.lower())


def comment_grammar(language: Language | str) -> tuple[re.Pattern[str], ...]:
    lang = normalize_language(language) if not isinstance(language, Language) else language
    return _COMMENT_GRAMMARS[lang]
