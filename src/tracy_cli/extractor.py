from __future__ import annotations
from typing import List, NamedTuple

from .grammars import Grammar, SyntaxTree
from .models import CommentSpan


class ExtractedFile(NamedTuple):
    tree: SyntaxTree
    spans: List[CommentSpan]


def extract_comments(path: str, text: str, grammar: Grammar) -> ExtractedFile:
    """Parse `text` and return one CommentSpan per comment node, in file order.

    A multi-line block comment stays a single span; matchers recover the
    physical line of a token from the span's own line breaks.
    """
    tree = grammar.parse(text)
    spans: List[CommentSpan] = []
    for node in tree.comment_nodes():
        scopes = tuple(tree.enclosing_scopes(node.start_line, node.column))
        spans.append(
            CommentSpan(
                path=path,
                start_line=node.start_line,
                end_line=node.end_line,
                text=node.text,
                scope=scopes[0] if scopes else None,
                column=node.column,
                scopes=scopes,
            )
        )
    return ExtractedFile(tree, spans)
