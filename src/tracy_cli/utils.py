from __future__ import annotations
import codecs
import os
from typing import Callable, Iterable, List, Tuple

SNIFF_BYTES = 8000


def to_rel(path: str, root: str) -> str:
    return os.path.relpath(path, root).replace(os.sep, "/")


def is_binary(path: str) -> bool:
    # same heuristic git uses: a NUL in the first block
    try:
        with open(path, "rb") as f:
            chunk = f.read(SNIFF_BYTES)
    except OSError:
        return False
    return b"\0" in chunk


def decode_source(data: bytes) -> str:
    if data.startswith(codecs.BOM_UTF8):
        data = data[len(codecs.BOM_UTF8):]
    return data.decode("utf-8")


def walk(
    root: str,
    keep_dir: Callable[[str, str], bool],
    on_dir: Callable[[str, str], None],
) -> Iterable[Tuple[str, List[str]]]:
    """Top-down walk yielding (relative dir, file names), pruning with `keep_dir`.

    `on_dir(abs_dir, rel_dir)` runs before a directory's files are yielded so
    callers can load per-directory ignore files.
    """
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = "" if dirpath == root else to_rel(dirpath, root)
        on_dir(dirpath, rel_dir)
        dirnames[:] = sorted(
            d for d in dirnames if keep_dir(os.path.join(dirpath, d), f"{rel_dir}/{d}" if rel_dir else d)
        )
        yield rel_dir, sorted(filenames)


def write_output(text: str, path: str) -> None:
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)
