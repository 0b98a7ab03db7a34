from collector.core.languages import Language, comment_grammar
from collector.models import CommentSpan


def scan(text: str, language: Language | str) -> list[CommentSpan]:
    """Locate every comment of ``language`` in ``text``, ordered by start offset.

    Each of the language's patterns is run over the whole text and the matches
    are merged. Spans of different patterns may overlap, e.g. a ``//`` inside a
    string literal or a block comment; only exact duplicates are dropped.
    """
    found: dict[tuple[int, int], str] = {}
    for pattern in comment_grammar(language):
        for match in pattern.finditer(text):
            if match.end() == match.start():
                continue
            found.setdefault((match.start(), match.end()), match.group("body"))
    return [CommentSpan(start=start, end=end, body=body) for (start, end), body in sorted(found.items())]
