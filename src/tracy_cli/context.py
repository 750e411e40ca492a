from __future__ import annotations
from typing import NamedTuple, Optional

from .grammars import SyntaxTree
from .models import CodeContext, CommentSpan, Scope


class Context(NamedTuple):
    above: Optional[CodeContext]
    below: Optional[CodeContext]
    inline: Optional[CodeContext]
    scope: Optional[Scope]


def _code_context(tree: SyntaxTree, line: int) -> Optional[CodeContext]:
    code = tree.code_line(line).strip()
    if not code:
        return None
    kind, name = tree.declaration_at(line)
    return CodeContext(text=code, kind=kind, name=name)


def resolve_context(tree: SyntaxTree, span: CommentSpan, line: int) -> Context:
    """Code around a reference on `line` of `span`, never crossing its scope body."""
    scope = span.scope
    first = scope.body_start if scope else 1
    last = scope.body_end if scope else tree.line_count

    above = None
    for ln in range(span.start_line - 1, first - 1, -1):
        above = _code_context(tree, ln)
        if above:
            break

    below = None
    for ln in range(span.end_line + 1, last + 1):
        below = _code_context(tree, ln)
        if below:
            break

    return Context(above, below, _code_context(tree, line), scope)
