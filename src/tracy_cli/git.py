from __future__ import annotations
import subprocess
from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from .models import BlameRecord, RepositoryMetadata

logger = structlog.get_logger(__name__)

GIT_TIMEOUT = 60


class GitError(Exception):
    def __init__(self, cmd: List[str], message: str):
        super().__init__(f"git {' '.join(cmd)} failed: {message}")
        self.cmd = cmd


def git(root: str, args: List[str], timeout: int = GIT_TIMEOUT, allow_codes: Tuple[int, ...] = ()) -> str:
    try:
        res = subprocess.run(
            ["git", "-C", root, *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout,
            check=False,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise GitError(args, str(e)) from e
    if res.returncode != 0 and res.returncode not in allow_codes:
        raise GitError(args, res.stderr.strip() or f"exit status {res.returncode}")
    return res.stdout


def repository_metadata(root: str) -> Optional[RepositoryMetadata]:
    try:
        repo_root = git(root, ["rev-parse", "--show-toplevel"]).strip()
        head_sha = git(root, ["rev-parse", "HEAD"]).strip()
        head_ref = git(root, ["rev-parse", "--abbrev-ref", "HEAD"]).strip()
        dirty = bool(git(root, ["status", "--porcelain"]).strip())
        # exit status 1 just means no remotes are configured
        remote_out = git(root, ["config", "--get-regexp", r"^remote\..*\.url$"], allow_codes=(1,))
    except GitError as e:
        logger.warning("git.meta_unavailable", root=root, error=str(e))
        return None
    return RepositoryMetadata(
        repo_root=repo_root,
        head_sha=head_sha,
        head_ref=None if head_ref in ("", "HEAD") else head_ref,
        is_dirty=dirty,
        remotes=parse_remotes(remote_out),
    )


def parse_remotes(output: str) -> Tuple[Tuple[str, str], ...]:
    remotes: Dict[str, str] = {}
    for line in output.splitlines():
        key, _, url = line.strip().partition(" ")
        if not key.startswith("remote.") or not key.endswith(".url") or not url:
            continue
        name = key[len("remote."):-len(".url")]
        remotes.setdefault(name, url.strip())
    return tuple(sorted(remotes.items()))


def line_ranges(lines: Iterable[int]) -> List[Tuple[int, int]]:
    ranges: List[Tuple[int, int]] = []
    for ln in sorted(set(lines)):
        if ranges and ln == ranges[-1][1] + 1:
            ranges[-1] = (ranges[-1][0], ln)
        else:
            ranges.append((ln, ln))
    return ranges


def blame(root: str, rel_path: str, lines: Iterable[int]) -> Dict[int, BlameRecord]:
    """One `git blame` call for every line of interest in `rel_path`."""
    ranges = line_ranges(lines)
    if not ranges:
        return {}
    args = ["blame", "--line-porcelain"]
    for start, end in ranges:
        args.extend(["-L", f"{start},{end}"])
    args.extend(["--", rel_path])
    return parse_blame_porcelain(git(root, args))


def parse_blame_porcelain(output: str) -> Dict[int, BlameRecord]:
    result: Dict[int, BlameRecord] = {}
    it = iter(output.splitlines())
    for header in it:
        parts = header.split()
        if len(parts) < 3 or not parts[2].isdigit():
            continue
        commit, final_line = parts[0], int(parts[2])
        fields: Dict[str, str] = {}
        for line in it:
            if line.startswith("\t"):
                break
            key, _, value = line.partition(" ")
            fields[key] = value
        author_time = fields.get("author-time", "")
        mail = fields.get("author-mail")
        result[final_line] = BlameRecord(
            commit=commit,
            author=fields.get("author"),
            author_mail=mail.strip().lstrip("<").rstrip(">") if mail else None,
            author_time=int(author_time) if author_time.lstrip("-").isdigit() else None,
            summary=fields.get("summary"),
        )
    return result
