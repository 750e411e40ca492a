from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ScanConfig:
    root: str
    slugs: Tuple[str, ...]
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    force_include: Tuple[str, ...] = ()
    include_vendored: bool = False
    include_generated: bool = False
    include_submodules: bool = False
    include_hidden: bool = False
    include_git_meta: bool = False
    include_blame: bool = False
    fallback_comments: bool = False
    languages: Tuple[Tuple[str, str], ...] = ()
    jobs: Optional[int] = None


@dataclass(frozen=True)
class RunOptions:
    format: str = "json"
    output: Optional[str] = None
    quiet: bool = False
    fail_on_empty: bool = False


@dataclass(frozen=True)
class Scope:
    kind: str  # function|class|module|other
    name: str
    start_line: int
    end_line: int
    body_start: int
    body_end: int

    def contains(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "name": self.name}


@dataclass(frozen=True)
class CommentSpan:
    path: str
    start_line: int
    end_line: int
    text: str
    scope: Optional[Scope] = None
    column: int = 0
    scopes: Tuple[Scope, ...] = ()  # innermost first


@dataclass(frozen=True)
class CodeContext:
    text: str
    kind: Optional[str] = None  # function|class|module|variable|other
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"text": self.text}
        if self.kind:
            out["kind"] = self.kind
        if self.name:
            out["name"] = self.name
        return out


@dataclass(frozen=True)
class BlameRecord:
    commit: str
    author: Optional[str] = None
    author_mail: Optional[str] = None
    author_time: Optional[int] = None
    summary: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"commit": self.commit}
        for key in ("author", "author_mail", "author_time", "summary"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


@dataclass(frozen=True)
class RepositoryMetadata:
    repo_root: str
    head_sha: str
    head_ref: Optional[str] = None
    is_dirty: bool = False
    remotes: Tuple[Tuple[str, str], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"repo_root": self.repo_root, "head_sha": self.head_sha}
        if self.head_ref:
            out["head_ref"] = self.head_ref
        out["is_dirty"] = self.is_dirty
        if self.remotes:
            out["remotes"] = dict(self.remotes)
        return out


@dataclass
class ReferenceOccurrence:
    requirement_id: str
    file: str
    line: int
    comment_text: str
    column: int = 0
    above: Optional[CodeContext] = None
    below: Optional[CodeContext] = None
    inline: Optional[CodeContext] = None
    scope: Optional[Scope] = None
    scopes: Tuple[Scope, ...] = ()  # innermost first
    blame: Optional[BlameRecord] = None

    def sort_key(self) -> Tuple[str, int, int]:
        return (self.file, self.line, self.column)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "file": self.file,
            "line": self.line,
            "comment_text": self.comment_text,
        }
        if self.above is not None:
            out["above"] = self.above.to_dict()
        if self.below is not None:
            out["below"] = self.below.to_dict()
        if self.inline is not None:
            out["inline"] = self.inline.to_dict()
        if self.scope is not None:
            out["scope"] = self.scope.to_dict()
        if self.scopes:
            out["scopes"] = [s.to_dict() for s in self.scopes]
        if self.blame is not None:
            out["blame"] = self.blame.to_dict()
        return out


@dataclass(frozen=True)
class Diagnostic:
    path: str
    stage: str  # read|decode|grammar|blame
    message: str


@dataclass
class FileResult:
    path: str
    occurrences: List[ReferenceOccurrence] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)


@dataclass
class ScanReport:
    results: Dict[str, List[ReferenceOccurrence]] = field(default_factory=dict)
    meta: Optional[RepositoryMetadata] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)
    files_scanned: int = 0

    @property
    def total(self) -> int:
        return sum(len(v) for v in self.results.values())

    def occurrences(self):
        for req_id, entries in self.results.items():
            for entry in entries:
                yield req_id, entry
