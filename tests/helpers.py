import functools
import pathlib
import shutil
import subprocess
from typing import Iterable, Union

import pytest

from tracy_cli.grammars import GrammarRegistry
from tracy_cli.models import CommentSpan, ScanConfig

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git binary not available")


def write_file(root: pathlib.Path, relative: str, content: Union[str, bytes] = "") -> pathlib.Path:
    """Create a file (and its parents) with UTF-8 text or raw bytes."""
    target = root / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        target.write_bytes(content)
    else:
        target.write_text(content, encoding="utf-8")
    return target


def scan_config(root: pathlib.Path, slugs: Iterable[str] = ("REQ",), **kwargs) -> ScanConfig:
    return ScanConfig(root=str(root), slugs=tuple(slugs), **kwargs)


@functools.lru_cache(maxsize=None)
def registry() -> GrammarRegistry:
    return GrammarRegistry.default()


def parse(path: str, text: str):
    grammar = registry().grammar_for(path)
    assert grammar is not None, path
    return grammar.parse(text)


def comments(path: str, text: str):
    return [node.text for node in parse(path, text).comment_nodes()]


def span(text: str, start_line: int = 1, column: int = 0, path: str = "a.ts") -> CommentSpan:
    return CommentSpan(
        path=path,
        start_line=start_line,
        end_line=start_line + text.count("\n"),
        text=text,
        column=column,
    )


def git(path: pathlib.Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=path, check=True, capture_output=True, text=True)
    return result.stdout


def git_init(path: pathlib.Path) -> None:
    git(path, "init", "-q")
    git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    git(path, "config", "user.email", "tester@example.com")
    git(path, "config", "user.name", "Test User")
    git(path, "config", "commit.gpgsign", "false")


def git_commit_all(path: pathlib.Path, message: str = "initial") -> str:
    git(path, "add", "-A")
    git(path, "commit", "-q", "-m", message)
    return git(path, "rev-parse", "HEAD").strip()
