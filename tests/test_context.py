from tracy_cli.context import resolve_context
from tracy_cli.extractor import extract_comments
from tracy_cli.grammars import GrammarRegistry
from tracy_cli.models import CodeContext

REGISTRY = GrammarRegistry.default()


def contexts(path, text):
    extracted = extract_comments(path, text, REGISTRY.grammar_for(path))
    return [(s, resolve_context(extracted.tree, s, s.start_line)) for s in extracted.spans]


def test_extractor_returns_one_span_per_comment():
    src = "// REQ-1\nint x; /* REQ-2\n REQ-3 */\n"
    spans = extract_comments("a.c", src, REGISTRY.grammar_for("a.c")).spans
    assert [(s.path, s.start_line, s.end_line) for s in spans] == [("a.c", 1, 1), ("a.c", 2, 3)]
    assert spans[1].text == "/* REQ-2\n REQ-3 */"


def test_comment_alone_in_function():
    src = (
        "export function login(user: string) {\n"
        "  check(user);\n"
        "\n"
        "  // REQ-7: enforce auth\n"
        "  return true;\n"
        "}\n"
    )
    [(span, ctx)] = contexts("a.ts", src)
    assert span.text == "// REQ-7: enforce auth"
    assert ctx.inline is None
    assert ctx.above == CodeContext("check(user);")
    assert ctx.below == CodeContext("return true;")
    assert (ctx.scope.kind, ctx.scope.name) == ("function", "login")


def test_trailing_comment_has_inline_declaration():
    [(_, ctx)] = contexts("a.ts", "const sampleRate = 44100; // REQ-2\n")
    assert ctx.inline == CodeContext("const sampleRate = 44100;", "variable", "sampleRate")
    assert ctx.above is None and ctx.below is None and ctx.scope is None


def test_context_stops_at_scope_body():
    src = (
        "fn main() {\n"
        "    // REQ-1 first line of body\n"
        "}\n"
        "fn other() {}\n"
    )
    [(_, ctx)] = contexts("main.rs", src)
    assert ctx.scope.name == "main"
    assert ctx.above is None
    assert ctx.below is None


def test_top_level_context_reaches_declarations():
    src = "fn main() {}\n// REQ-3\nfn helper() {}\n"
    [(_, ctx)] = contexts("main.rs", src)
    assert ctx.scope is None
    assert ctx.above == CodeContext("fn main() {}", "function", "main")
    assert ctx.below == CodeContext("fn helper() {}", "function", "helper")


def test_below_skips_blank_and_comment_lines():
    src = "# REQ-1 top\n\n# unrelated\ndef handler(event):\n    return event\n"
    (_, ctx), _ = contexts("m.py", src)
    assert ctx.below == CodeContext("def handler(event):", "function", "handler")


def test_python_scope_context():
    src = "def handler(event):\n    # REQ-4\n    return event\n"
    [(_, ctx)] = contexts("m.py", src)
    assert (ctx.scope.kind, ctx.scope.name) == ("function", "handler")
    assert ctx.above is None
    assert ctx.below == CodeContext("return event")
