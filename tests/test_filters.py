from tests.helpers import write_file
from tracy_cli.filters import Attributes, FilterPolicy, IgnoreRules, list_candidate_files


def candidates(root, **policy):
    return sorted(
        p[len(str(root)) + 1:].replace("\\", "/") for p in list_candidate_files(str(root), FilterPolicy(**policy))
    )


def test_gitignore_with_negation(tmp_path):
    write_file(tmp_path, ".gitignore", "build/\n*.log\n!keep.log\n")
    write_file(tmp_path, "build/out.ts", "// REQ-1\n")
    write_file(tmp_path, "debug.log", "x\n")
    write_file(tmp_path, "keep.log", "x\n")
    write_file(tmp_path, "src/a.ts", "// REQ-1\n")
    assert candidates(tmp_path) == ["keep.log", "src/a.ts"]


def test_nested_ignore_files_are_scoped_to_their_directory(tmp_path):
    write_file(tmp_path, ".gitignore", "*.gen.ts\n")
    write_file(tmp_path, "pkg/.gitignore", "!special.gen.ts\nlocal.ts\n")
    write_file(tmp_path, "pkg/special.gen.ts", "")
    write_file(tmp_path, "pkg/other.gen.ts", "")
    write_file(tmp_path, "pkg/local.ts", "")
    write_file(tmp_path, "local.ts", "")
    assert candidates(tmp_path) == ["local.ts", "pkg/special.gen.ts"]


def test_tracyignore_and_git_info_exclude(tmp_path):
    write_file(tmp_path, ".git/info/exclude", "secret.ts\n")
    write_file(tmp_path, ".tracyignore", "fixtures/\n")
    write_file(tmp_path, ".ignore", "*.snap\n")
    write_file(tmp_path, "secret.ts", "")
    write_file(tmp_path, "fixtures/a.ts", "")
    write_file(tmp_path, "a.snap", "")
    write_file(tmp_path, "main.ts", "")
    assert candidates(tmp_path) == ["main.ts"]


def test_git_directory_never_scanned(tmp_path):
    write_file(tmp_path, ".git/hooks/pre-commit.sh", "# REQ-1\n")
    write_file(tmp_path, "a.sh", "# REQ-1\n")
    assert candidates(tmp_path, include_hidden=True) == ["a.sh"]


def test_linguist_attributes(tmp_path):
    write_file(
        tmp_path,
        ".gitattributes",
        "vendor/** linguist-vendored\ngen/*.ts linguist-generated=true\ngen/keep.ts -linguist-generated\n",
    )
    write_file(tmp_path, "vendor/lib.js", "")
    write_file(tmp_path, "gen/a.ts", "")
    write_file(tmp_path, "gen/keep.ts", "")
    write_file(tmp_path, "app.ts", "")
    assert candidates(tmp_path) == ["app.ts", "gen/keep.ts"]
    assert candidates(tmp_path, include_vendored=True) == ["app.ts", "gen/keep.ts", "vendor/lib.js"]
    assert candidates(tmp_path, include_generated=True) == ["app.ts", "gen/a.ts", "gen/keep.ts"]


def test_attribute_last_match_wins():
    attrs = Attributes(["*.js linguist-vendored", "src/*.js linguist-vendored=false", "src/x.js !linguist-vendored"])
    assert attrs.vendored("lib/a.js")
    assert not attrs.vendored("src/a.js")
    assert not attrs.vendored("src/x.js")
    assert not attrs.generated("lib/a.js")


def test_nested_repositories_skipped_unless_requested(tmp_path):
    write_file(tmp_path, "deps/lib/.git", "gitdir: ../../.git/modules/lib\n")
    write_file(tmp_path, "deps/lib/a.ts", "")
    write_file(tmp_path, "main.ts", "")
    assert candidates(tmp_path) == ["main.ts"]
    assert candidates(tmp_path, include_submodules=True) == ["deps/lib/a.ts", "main.ts"]


def test_hidden_entries(tmp_path):
    write_file(tmp_path, ".config/a.ts", "")
    write_file(tmp_path, ".eslintrc.js", "")
    write_file(tmp_path, "main.ts", "")
    assert candidates(tmp_path) == ["main.ts"]
    assert candidates(tmp_path, include_hidden=True) == [".config/a.ts", ".eslintrc.js", "main.ts"]


def test_include_and_exclude_globs(tmp_path):
    write_file(tmp_path, "src/a.ts", "")
    write_file(tmp_path, "src/gen/b.ts", "")
    write_file(tmp_path, "docs/c.md", "")
    assert candidates(tmp_path, include=("src/**",)) == ["src/a.ts", "src/gen/b.ts"]
    assert candidates(tmp_path, include=("src/**",), exclude=("src/gen/**",)) == ["src/a.ts"]
    assert candidates(tmp_path, exclude=("*.md",)) == ["src/a.ts", "src/gen/b.ts"]


def test_force_include_overrides_ignore_files(tmp_path):
    write_file(tmp_path, ".gitignore", "build/\n")
    write_file(tmp_path, "build/keep.ts", "")
    write_file(tmp_path, "build/other.ts", "")
    write_file(tmp_path, "main.ts", "")
    assert candidates(tmp_path) == ["main.ts"]
    assert candidates(tmp_path, force_include=("build/keep.ts",)) == ["build/keep.ts", "main.ts"]


def test_exclude_beats_force_include(tmp_path):
    write_file(tmp_path, ".gitignore", "*.ts\n")
    write_file(tmp_path, "a.ts", "")
    assert candidates(tmp_path, force_include=("a.ts",), exclude=("a.ts",)) == []


def test_binary_files_are_skipped(tmp_path):
    write_file(tmp_path, "blob.ts", b"// REQ-1\x00\x01\x02")
    write_file(tmp_path, "text.ts", "// REQ-1\n")
    assert candidates(tmp_path) == ["text.ts"]


def test_ignore_rules_directory_patterns():
    rules = IgnoreRules()
    rules.add_lines("", ["out/", "!out/keep/"])
    assert rules.matches("out", is_dir=True)
    assert not rules.matches("out", is_dir=False)
    assert rules.ignored("out/x.ts")
    assert not rules.ignored("src/out.ts")
