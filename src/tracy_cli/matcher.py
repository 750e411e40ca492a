from __future__ import annotations
import re
from typing import Iterable, Iterator, NamedTuple, Sequence

from .errors import NoSlugsError
from .models import CommentSpan

# identifier characters that may not touch either end of a token
_WORD = "A-Za-z0-9_"


class Reference(NamedTuple):
    requirement_id: str
    line: int
    column: int


def build_pattern(slugs: Sequence[str]) -> "re.Pattern[str]":
    cleaned = [s for s in (slug.strip() for slug in slugs) if s]
    if not cleaned:
        raise NoSlugsError()
    # longest first so overlapping prefixes (REQ, REQX) resolve to the longer slug
    alternatives = "|".join(re.escape(s) for s in sorted(set(cleaned), key=lambda s: (-len(s), s)))
    return re.compile(rf"(?<![{_WORD}])(?:{alternatives})-[0-9]+(?![{_WORD}])")


class ReferenceMatcher:
    """Finds SLUG-NUMBER tokens in comment text."""

    def __init__(self, slugs: Iterable[str]):
        self.slugs = tuple(slugs)
        self.pattern = build_pattern(self.slugs)

    def matches(self, span: CommentSpan) -> Iterator[Reference]:
        text = span.text
        for m in self.pattern.finditer(text):
            offset = m.start()
            breaks = text.count("\n", 0, offset)
            line_start = text.rfind("\n", 0, offset) + 1
            column = offset - line_start if breaks else span.column + offset
            yield Reference(m.group(0), span.start_line + breaks, column)
