"""Which files a scan looks at.

The walk itself lives in utils.walk; this module holds the policy: ignore
files, .gitattributes linguist classifications, nested repositories, hidden
entries, user include/exclude globs and binary sniffing.
"""
from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import structlog
from pathspec import PathSpec
from pathspec.patterns import GitWildMatchPattern

from .models import ScanConfig
from .utils import is_binary, walk

logger = structlog.get_logger(__name__)

IGNORE_FILES = (".gitignore", ".ignore", ".tracyignore")
LINGUIST_ATTRS = ("linguist-vendored", "linguist-generated")


@dataclass(frozen=True)
class FilterPolicy:
    include_vendored: bool = False
    include_generated: bool = False
    include_submodules: bool = False
    include_hidden: bool = False
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    force_include: Tuple[str, ...] = ()

    @classmethod
    def from_config(cls, cfg: ScanConfig) -> "FilterPolicy":
        return cls(
            include_vendored=cfg.include_vendored,
            include_generated=cfg.include_generated,
            include_submodules=cfg.include_submodules,
            include_hidden=cfg.include_hidden,
            include=cfg.include,
            exclude=cfg.exclude,
            force_include=cfg.force_include,
        )


def _read_lines(path: str) -> List[str]:
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return f.read().splitlines()
    except OSError:
        return []


def _patterns(lines: Sequence[str]) -> List[GitWildMatchPattern]:
    out = []
    for line in lines:
        p = GitWildMatchPattern(line)
        if p.include is not None:
            out.append(p)
    return out


class IgnoreRules:
    """gitignore semantics over any number of nested ignore files.

    Layers are added outermost first; within and across layers the last
    matching pattern decides, so deeper files override their parents.
    """

    def __init__(self):
        self._layers: List[Tuple[str, List[GitWildMatchPattern]]] = []

    def add_lines(self, base: str, lines: Sequence[str]) -> None:
        patterns = _patterns(lines)
        if patterns:
            self._layers.append((base, patterns))

    def load_dir(self, abs_dir: str, rel_dir: str) -> None:
        for name in IGNORE_FILES:
            path = os.path.join(abs_dir, name)
            if os.path.isfile(path):
                self.add_lines(rel_dir, _read_lines(path))

    def matches(self, rel: str, is_dir: bool = False) -> bool:
        verdict = False
        for base, patterns in self._layers:
            if base:
                if not rel.startswith(base + "/"):
                    continue
                sub = rel[len(base) + 1:]
            else:
                sub = rel
            if is_dir:
                sub += "/"
            for p in patterns:
                if p.regex.match(sub):
                    verdict = bool(p.include)
        return verdict

    def ignored(self, rel: str) -> bool:
        parts = rel.split("/")
        for i in range(1, len(parts)):
            if self.matches("/".join(parts[:i]), is_dir=True):
                return True
        return self.matches(rel)


class Attributes:
    """linguist-vendored / linguist-generated from .gitattributes."""

    def __init__(self, lines: Sequence[str] = ()):
        self._rules: List[Tuple[GitWildMatchPattern, Dict[str, Optional[bool]]]] = []
        for raw in lines:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            fields = line.split()
            pattern = GitWildMatchPattern(fields[0])
            if pattern.include is None or not pattern.include:
                continue
            attrs: Dict[str, Optional[bool]] = {}
            for token in fields[1:]:
                name, value = _attr(token)
                if name in LINGUIST_ATTRS:
                    attrs[name] = value
            if attrs:
                self._rules.append((pattern, attrs))

    @classmethod
    def load(cls, root: str) -> "Attributes":
        lines = _read_lines(os.path.join(root, ".gitattributes"))
        lines += _read_lines(os.path.join(root, ".git", "info", "attributes"))
        return cls(lines)

    def value(self, rel: str, name: str) -> bool:
        result: Optional[bool] = None
        for pattern, attrs in self._rules:
            if name in attrs and pattern.regex.match(rel):
                result = attrs[name]
        return bool(result)

    def vendored(self, rel: str) -> bool:
        return self.value(rel, "linguist-vendored")

    def generated(self, rel: str) -> bool:
        return self.value(rel, "linguist-generated")


def _attr(token: str) -> Tuple[str, Optional[bool]]:
    if token.startswith("-"):
        return token[1:], False
    if token.startswith("!"):
        return token[1:], None
    name, sep, value = token.partition("=")
    if not sep:
        return name, True
    return name, value.strip().lower() not in ("false", "0", "no", "off", "")


class CandidateFilter:
    def __init__(self, root: str, policy: FilterPolicy):
        self.root = root
        self.policy = policy
        self.ignore = IgnoreRules()
        self.ignore.add_lines("", _read_lines(os.path.join(root, ".git", "info", "exclude")))
        self.attributes = Attributes.load(root)
        self.include = PathSpec.from_lines("gitwildmatch", policy.include) if policy.include else None
        self.exclude = PathSpec.from_lines("gitwildmatch", policy.exclude)
        self.force = PathSpec.from_lines("gitwildmatch", policy.force_include)

    def _hidden(self, name: str) -> bool:
        return name.startswith(".") and not self.policy.include_hidden

    def keep_dir(self, abs_dir: str, rel_dir: str) -> bool:
        name = os.path.basename(rel_dir)
        if name == ".git":
            return False
        if not self.policy.include_submodules and os.path.exists(os.path.join(abs_dir, ".git")):
            logger.debug("filter.skip_submodule", path=rel_dir)
            return False
        if self.policy.force_include:
            # force-included files may live below ignored or hidden dirs
            return True
        if self._hidden(name):
            return False
        return not self.ignore.matches(rel_dir, is_dir=True)

    def accepts(self, rel: str) -> bool:
        forced = self.force.match_file(rel)
        if not forced:
            if any(self._hidden(part) for part in rel.split("/")):
                return False
            if self.ignore.ignored(rel):
                return False
        if not self.policy.include_vendored and self.attributes.vendored(rel):
            return False
        if not self.policy.include_generated and self.attributes.generated(rel):
            return False
        if self.exclude.match_file(rel):
            return False
        if self.include is not None and not self.include.match_file(rel):
            return False
        return True


def list_candidate_files(root: str, policy: FilterPolicy) -> Iterator[str]:
    """Yield absolute paths of files under `root` that pass `policy`."""
    cf = CandidateFilter(root, policy)
    for rel_dir, names in walk(root, cf.keep_dir, cf.ignore.load_dir):
        for name in names:
            rel = f"{rel_dir}/{name}" if rel_dir else name
            path = os.path.join(root, rel)
            if not os.path.isfile(path) or not cf.accepts(rel):
                continue
            if is_binary(path):
                logger.debug("filter.skip_binary", path=rel)
                continue
            yield path
