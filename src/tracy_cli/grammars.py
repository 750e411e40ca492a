"""Comment and scope recognition for the languages tracy understands.

Each Grammar names a tree-sitter language from ``tree_sitter_language_pack``
together with the extensions, filenames and shebang interpreters it claims.
Parsing a file yields a SyntaxTree where:

- comments are the named nodes whose type contains ``comment`` (plus a few
  grammar specific extras such as SQL ``marginalia``). Strings, regex
  literals and heredocs are whatever the parser says they are, never comments.
- scopes are the named function/class/module ancestors of a position,
  classified from the node type (``function_item``, ``class_declaration``...).

Grammars are assembled into a GrammarRegistry which maps a path (extension,
well-known filename or shebang interpreter) to a grammar. Files no grammar
claims can use LineCommentGrammar, a ``#`` / ``//`` heuristic with no scopes.
"""
from __future__ import annotations
import os
import re
from typing import Any, Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Sequence, Tuple

import structlog
from tree_sitter_language_pack import get_parser

from .models import Scope

logger = structlog.get_logger(__name__)

SCOPE_KINDS = frozenset({"function", "class", "module", "other"})

# the last word before the suffix decides: generator_function_declaration -> function
DECLARATION_SUFFIXES = ("_definition", "_declaration", "_item", "_specifier")
KIND_WORDS = {
    "function": "function", "method": "function", "constructor": "function", "destructor": "function",
    "class": "class", "struct": "class", "interface": "class", "enum": "class", "trait": "class",
    "record": "class", "protocol": "class", "object": "class", "union": "class", "type": "class",
    "module": "module", "namespace": "module", "mod": "module",
    "impl": "other", "extension": "other",
    "variable": "variable", "lexical": "variable", "let": "variable", "const": "variable",
    "var": "variable", "val": "variable", "field": "variable", "property": "variable", "static": "variable",
}
NODE_KINDS = {
    "method": "function", "singleton_method": "function", "class": "class", "module": "module",
    "function": "function", "function_expression": "function", "arrow_function": "function",
    "generator_function": "function", "func_literal": "function", "closure_expression": "function",
    "lambda": "function", "internal_module": "module",
    "declaration": "variable", "assignment": "variable", "variable_assignment": "variable",
}
# only named through a `name` field or the binding they are assigned to
ANONYMOUS = frozenset(
    {"function", "function_expression", "arrow_function", "generator_function", "func_literal",
     "closure_expression", "lambda", "class"}
)
BINDING_PARENTS = frozenset(
    {"variable_declarator", "assignment_expression", "assignment", "pair", "public_field_definition",
     "field_definition"}
)
NAME_FIELDS = ("declarator", "pattern", "left", "key", "type")
NAME_TYPES = frozenset({"constant", "word", "name", "variable_name", "dotted_name", "scope_resolution"})
NAME_CARRIERS = ("declarator", "_spec", "variable_declaration")

_BLANK = re.compile(r"[^\n]")


def node_kind(node: Any) -> Optional[str]:
    """function|class|module|other|variable for declaration nodes, else None."""
    if not node.is_named:
        return None
    kind = NODE_KINDS.get(node.type)
    if kind:
        return kind
    for suffix in DECLARATION_SUFFIXES:
        if node.type.endswith(suffix):
            return KIND_WORDS.get(node.type[: -len(suffix)].rsplit("_", 1)[-1])
    return None


def _is_name(node: Any) -> bool:
    return node.type.endswith("identifier") or node.type in NAME_TYPES


def _last_line(node: Any) -> int:
    row, col = node.end_point
    # a node ending in a newline stops on the previous line
    return row + 1 if col > 0 or row == node.start_point[0] else row


class CommentNode(NamedTuple):
    text: str
    start_line: int
    end_line: int
    column: int
    start_byte: int
    end_byte: int


class SyntaxTree:
    """Parsed view of one file: comments, scopes and comment-free code lines."""

    def __init__(self, grammar: "Grammar", text: str, data: bytes, comments: List[CommentNode], tree: Any = None):
        self.grammar = grammar
        self._tree = tree
        self._root = tree.root_node if tree is not None else None
        self._data = data
        self._lines = text.split("\n")
        self._comments = comments
        self._code_lines = [ln.rstrip("\r") for ln in _mask(data, comments).split("\n")]

    @property
    def line_count(self) -> int:
        return len(self._code_lines)

    def comment_nodes(self) -> List[CommentNode]:
        return list(self._comments)

    def code_line(self, line: int) -> str:
        if 1 <= line <= len(self._code_lines):
            return self._code_lines[line - 1]
        return ""

    def node_text(self, node: Any) -> str:
        return self._data[node.start_byte:node.end_byte].decode("utf-8", "replace")

    def scopes(self) -> List[Scope]:
        """Every named scope in the file, in document order."""
        out: List[Scope] = []
        if self._root is None:
            return out
        stack = list(reversed(self._root.named_children))
        while stack:
            node = stack.pop()
            scope = self._scope(node)
            if scope is not None:
                out.append(scope)
            stack.extend(reversed(node.named_children))
        return out

    def enclosing_scopes(self, line: int, column: Optional[int] = None) -> List[Scope]:
        """Named scopes around a position, innermost first.

        `column` is a character offset; it defaults to the first non-blank
        character of the line. In indentation-scoped grammars a scope only
        owns positions indented deeper than its own header.
        """
        if self._root is None or not 1 <= line <= len(self._lines):
            return []
        text = self._lines[line - 1]
        if column is None:
            column = len(text) - len(text.lstrip())
        row, col = line - 1, self._byte_column(line, column)
        node = self._root.named_descendant_for_point_range((row, col), (row, col + 1))
        out: List[Scope] = []
        while node is not None and node.parent is not None:
            if not (self.grammar.indented and node.start_point[1] >= col):
                scope = self._scope(node)
                if scope is not None:
                    out.append(scope)
            node = node.parent
        return out

    def enclosing_scope(self, line: int, column: Optional[int] = None) -> Optional[Scope]:
        scopes = self.enclosing_scopes(line, column)
        return scopes[0] if scopes else None

    def declaration_at(self, line: int) -> Tuple[Optional[str], Optional[str]]:
        """Kind and name of a declaration starting on `line`, or (None, None)."""
        code = self.code_line(line)
        if self._root is None or not code.strip():
            return None, None
        row = line - 1
        col = self._byte_column(line, len(code) - len(code.lstrip()))
        node = self._root.named_descendant_for_point_range((row, col), (row, col + 1))
        chain = []
        while node is not None and node.parent is not None and node.start_point[0] == row:
            chain.append(node)
            node = node.parent
        # wrappers such as `export` or decorators hold the declaration as a child
        candidates = chain + [c for n in chain for c in n.named_children if c.start_point[0] == row]
        for cand in candidates:
            kind = node_kind(cand)
            if kind is None:
                continue
            name = self._bound_name(cand)
            if name:
                return kind, name
        return None, None

    def _byte_column(self, line: int, column: int) -> int:
        return len(self._lines[line - 1][:column].encode("utf-8"))

    def _scope(self, node: Any) -> Optional[Scope]:
        kind = node_kind(node)
        if kind not in SCOPE_KINDS:
            return None
        name = self._bound_name(node)
        if not name:
            return None
        start = node.start_point[0] + 1
        end = _last_line(node)
        body_start, body_end = self._body(node, start, end)
        return Scope(kind, name, start, end, body_start, body_end)

    def _bound_name(self, node: Any) -> Optional[str]:
        name = self._name(node)
        if name is None and node.parent is not None and node.parent.type in BINDING_PARENTS:
            name = self._name(node.parent)
        return name

    def _name(self, node: Any, depth: int = 0) -> Optional[str]:
        if _is_name(node):
            return self.node_text(node)
        if depth > 3:
            return None
        named = node.child_by_field_name("name")
        if named is not None:
            text = self.node_text(named).strip()
            return text if text and "\n" not in text else None
        for field in NAME_FIELDS:
            child = node.child_by_field_name(field)
            if child is not None:
                name = self._name(child, depth + 1)
                if name:
                    return name
        if node.type in ANONYMOUS:
            return None
        for child in node.named_children:
            if _is_name(child) or child.type.endswith(NAME_CARRIERS):
                name = self._name(child, depth + 1)
                if name:
                    return name
        return None

    def _body(self, node: Any, start: int, end: int) -> Tuple[int, int]:
        body = node.child_by_field_name("body")
        if body is not None:
            first, last = body.start_point[0] + 1, _last_line(body)
            if self._data[body.start_byte:body.start_byte + 1] == b"{":
                return first + 1, last - 1
            if self.grammar.indented:
                return first, last
        # header line and, outside indentation grammars, the closing line are not body
        return start + 1, end if self.grammar.indented else end - 1


def _line_starts(data: bytes) -> List[int]:
    return [0] + [m.end() for m in re.finditer(b"\n", data)]


def _mask(data: bytes, comments: Iterable[CommentNode]) -> str:
    out: List[str] = []
    pos = 0
    for c in comments:
        out.append(data[pos:c.start_byte].decode("utf-8"))
        out.append(_BLANK.sub(" ", data[c.start_byte:c.end_byte].decode("utf-8")))
        pos = c.end_byte
    out.append(data[pos:].decode("utf-8"))
    return "".join(out)


def _comment(data: bytes, starts: List[int], row: int, start_byte: int, raw: str) -> CommentNode:
    column = len(data[starts[row]:start_byte].decode("utf-8"))
    end_byte = start_byte + len(raw.encode("utf-8"))
    return CommentNode(raw, row + 1, row + 1 + raw.count("\n"), column, start_byte, end_byte)


class Grammar:
    """A tree-sitter language plus the paths it claims."""

    def __init__(
        self,
        name: str,
        language: Optional[str] = None,
        extensions: Sequence[str] = (),
        filenames: Sequence[str] = (),
        interpreters: Sequence[str] = (),
        comment_types: Sequence[str] = (),
        indented: bool = False,
    ):
        self.name = name
        self.language = language or name
        self.extensions = tuple(e.lower() for e in extensions)
        self.filenames = tuple(filenames)
        self.interpreters = tuple(interpreters)
        self.comment_types = frozenset(comment_types)
        self.indented = indented

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

    def load(self) -> None:
        get_parser(self.language)

    def is_comment(self, node_type: str) -> bool:
        return "comment" in node_type or node_type in self.comment_types

    def parse(self, text: str) -> SyntaxTree:
        data = text.encode("utf-8")
        # parsers are not shared between threads
        tree = get_parser(self.language).parse(data)
        starts = _line_starts(data)
        comments: List[CommentNode] = []
        for node in self._comment_nodes(tree.root_node):
            raw = data[node.start_byte:node.end_byte].decode("utf-8").rstrip("\r\n")
            if raw.strip():
                comments.append(_comment(data, starts, node.start_point[0], node.start_byte, raw))
        return SyntaxTree(self, text, data, comments, tree)

    def _comment_nodes(self, root: Any) -> Iterator[Any]:
        stack = [root]
        while stack:
            node = stack.pop()
            if self.is_comment(node.type):
                # doc comment markers are nested comment nodes
                yield node
                continue
            stack.extend(reversed(node.named_children))


class LineCommentGrammar(Grammar):
    """Heuristic for files no grammar claims: `#` and `//` line comments, no scopes."""

    LINE_COMMENT = re.compile(r"(?:(?<=\s)|^)(?:#|//).*$")

    def __init__(self) -> None:
        super().__init__("fallback")

    def load(self) -> None:
        pass

    def parse(self, text: str) -> SyntaxTree:
        data = text.encode("utf-8")
        starts = _line_starts(data)
        comments: List[CommentNode] = []
        for row, line in enumerate(text.split("\n")):
            m = self.LINE_COMMENT.search(line)
            if m:
                start_byte = starts[row] + len(line[:m.start()].encode("utf-8"))
                comments.append(_comment(data, starts, row, start_byte, m.group().rstrip("\r")))
        return SyntaxTree(self, text, data, comments)


def _builtin() -> List[Grammar]:
    return [
        Grammar("c", extensions=(".c", ".h")),
        Grammar("cpp", extensions=(".cc", ".cpp", ".cxx", ".c++", ".hpp", ".hh", ".hxx", ".h++", ".ino")),
        Grammar("csharp", extensions=(".cs",)),
        Grammar("java", extensions=(".java",)),
        Grammar("javascript", extensions=(".js", ".jsx", ".mjs", ".cjs"), interpreters=("node", "nodejs")),
        Grammar("typescript", extensions=(".ts", ".mts", ".cts"), interpreters=("deno", "ts-node")),
        Grammar("tsx", extensions=(".tsx",)),
        Grammar("go", extensions=(".go",)),
        Grammar("rust", extensions=(".rs",)),
        Grammar("kotlin", extensions=(".kt", ".kts")),
        Grammar("swift", extensions=(".swift",)),
        Grammar("scala", extensions=(".scala", ".sc")),
        Grammar("php", extensions=(".php",), interpreters=("php",)),
        Grammar("dart", extensions=(".dart",)),
        Grammar("groovy", extensions=(".groovy", ".gradle"), filenames=("Jenkinsfile",), interpreters=("groovy",)),
        Grammar("protobuf", "proto", extensions=(".proto",)),
        Grammar(
            "shell", "bash", extensions=(".sh", ".bash", ".zsh", ".ksh"),
            filenames=(".bashrc", ".bash_profile", ".zshrc", ".profile"),
            interpreters=("sh", "bash", "zsh", "ksh", "dash"),
        ),
        Grammar(
            "python", extensions=(".py", ".pyi", ".pyw"), filenames=("SConstruct", "SConscript"),
            interpreters=("python", "python2", "python3", "pypy", "pypy3"), indented=True,
        ),
        Grammar(
            "ruby", extensions=(".rb", ".rake", ".gemspec", ".ru"),
            filenames=("Rakefile", "Gemfile", "Guardfile", "Vagrantfile", "Podfile"), interpreters=("ruby",),
        ),
        Grammar("lua", extensions=(".lua",), interpreters=("lua", "luajit")),
        Grammar("elixir", extensions=(".ex", ".exs"), interpreters=("elixir",)),
        Grammar("yaml", extensions=(".yml", ".yaml")),
        Grammar("toml", extensions=(".toml",), filenames=("Pipfile",)),
        Grammar("sql", extensions=(".sql",), comment_types=("marginalia",)),
        Grammar("html", extensions=(".html", ".htm", ".xhtml")),
        Grammar("xml", extensions=(".xml", ".xsd", ".xsl", ".svg")),
        Grammar("vue", extensions=(".vue",)),
        Grammar("svelte", extensions=(".svelte",)),
        Grammar("css", extensions=(".css",)),
        Grammar("scss", extensions=(".scss",)),
        Grammar("dockerfile", extensions=(".dockerfile",), filenames=("Dockerfile", "Containerfile")),
        Grammar("make", extensions=(".mk", ".mak"), filenames=("Makefile", "makefile", "GNUmakefile")),
        Grammar("cmake", extensions=(".cmake",), filenames=("CMakeLists.txt",)),
        Grammar("r", extensions=(".r",), interpreters=("Rscript",)),
        Grammar("perl", extensions=(".pl", ".pm", ".t"), interpreters=("perl",)),
        Grammar("powershell", extensions=(".ps1", ".psm1", ".psd1"), interpreters=("pwsh", "powershell")),
        Grammar("haskell", extensions=(".hs",), interpreters=("runhaskell",)),
        Grammar("terraform", "hcl", extensions=(".tf", ".tfvars", ".hcl")),
    ]


class GrammarRegistry:
    """Read-only mapping from paths to grammars. Build once, share between workers."""

    def __init__(
        self,
        grammars: Iterable[Grammar],
        overrides: Optional[Mapping[str, str]] = None,
        fallback: Optional[Grammar] = None,
    ):
        self._by_name: Dict[str, Grammar] = {}
        self._by_ext: Dict[str, Grammar] = {}
        self._by_filename: Dict[str, Grammar] = {}
        self._by_interpreter: Dict[str, Grammar] = {}
        self._overrides: Dict[str, Grammar] = {}
        self.fallback = fallback
        for g in grammars:
            self._by_name[g.name] = g
            for ext in g.extensions:
                self._by_ext[ext] = g
            for fname in g.filenames:
                self._by_filename[fname] = g
            for interp in g.interpreters:
                self._by_interpreter[interp] = g
        for ext, name in (overrides or {}).items():
            g = self._by_name.get(name)
            if g is None:
                logger.warning("grammar.unknown_override", extension=ext, grammar=name)
                continue
            ext = ext.lower() if ext.startswith(".") else "." + ext.lower()
            self._overrides[ext] = g

    @classmethod
    def default(
        cls,
        overrides: Optional[Mapping[str, str]] = None,
        fallback_comments: bool = False,
        only: Optional[Iterable[str]] = None,
    ) -> "GrammarRegistry":
        wanted = set(only) if only is not None else None
        grammars: List[Grammar] = []
        for grammar in _builtin():
            if wanted is not None and grammar.name not in wanted:
                continue
            try:
                grammar.load()
            except Exception as e:
                # a language missing from the pack disables only that language
                logger.warning("grammar.load_failed", grammar=grammar.name, language=grammar.language, error=str(e))
                continue
            grammars.append(grammar)
        return cls(grammars, overrides, LineCommentGrammar() if fallback_comments else None)

    @property
    def names(self) -> List[str]:
        return sorted(self._by_name)

    def get(self, name: str) -> Optional[Grammar]:
        return self._by_name.get(name)

    def grammar_for(self, path: str, head: Optional[str] = None) -> Optional[Grammar]:
        base = os.path.basename(path)
        _, ext = os.path.splitext(base)
        ext = ext.lower()
        g = self._overrides.get(ext) if ext else None
        if g is None:
            g = self._by_filename.get(base)
        if g is None and ext:
            g = self._by_ext.get(ext)
        if g is None and head is not None:
            g = self._by_interpreter.get(shebang_interpreter(head) or "")
        return g or self.fallback


SHEBANG = re.compile(r"^#!\s*(?P<path>\S+)(?:\s+(?P<arg>\S+))?")


def shebang_interpreter(head: str) -> Optional[str]:
    m = SHEBANG.match(head)
    if not m:
        return None
    prog = os.path.basename(m.group("path"))
    if prog == "env":
        arg = m.group("arg")
        if not arg or arg.startswith("-"):
            return None
        prog = os.path.basename(arg)
    # python3.11 -> python3
    return re.sub(r"(\d)\.\d+$", r"\1", prog)
