from __future__ import annotations
import copy
import os
import yaml
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import structlog

from .errors import ConfigError, InvalidRootError, NoSlugsError
from .models import RunOptions, ScanConfig

logger = structlog.get_logger(__name__)

CONFIG_NAMES = ("tracy.yml", "tracy.yaml", ".tracy.yml")
FORMATS = ("json", "jsonl", "csv", "sarif", "markdown")

DEFAULT_CONFIG = {
    "root": None,
    "format": "json",
    "output": None,
    "quiet": False,
    "fail_on_empty": False,
    "include_git_meta": False,
    "include_blame": False,
    "jobs": None,
    "scan": {
        "slug": [],
        "fallback_comments": False,
        "languages": {},
    },
    "filter": {
        "include_vendored": False,
        "include_generated": False,
        "include_submodules": False,
        "include_hidden": False,
        "include": [],
        "exclude": [],
        "force_include": [],
    },
}


@dataclass
class Config:
    data: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_CONFIG))
    path: Optional[str] = None

    @property
    def base_dir(self) -> Optional[str]:
        if not self.path:
            return None
        return os.path.dirname(os.path.abspath(self.path))


def find_config(start: str) -> Optional[str]:
    """Nearest tracy.yml (or variant) in `start` or any parent directory."""
    cur = os.path.abspath(start)
    while True:
        for name in CONFIG_NAMES:
            path = os.path.join(cur, name)
            if os.path.isfile(path):
                return path
        parent = os.path.dirname(cur)
        if parent == cur:
            return None
        cur = parent


def load_config(path: str) -> Config:
    try:
        with open(path, "r", encoding="utf-8") as f:
            user = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(user, dict):
        raise ConfigError(f"{path}: top level must be a mapping")

    merged = copy.deepcopy(DEFAULT_CONFIG)
    for k, v in user.items():
        if k not in merged:
            raise ConfigError(f"{path}: unknown key '{k}'")
        if isinstance(merged[k], dict):
            if v is None:
                continue
            if not isinstance(v, dict):
                raise ConfigError(f"{path}: '{k}' must be a mapping")
            for sub in v:
                if sub not in merged[k]:
                    raise ConfigError(f"{path}: unknown key '{k}.{sub}'")
            merged[k].update(v)
        else:
            merged[k] = v
    logger.debug("config.loaded", path=path)
    return Config(merged, path)


def _arg(args: Any, name: str) -> Any:
    return getattr(args, name, None)


def _bool(value: Any, key: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false")
    return value


def _str_list(value: Any, key: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ConfigError(f"'{key}' must be a string or a list of strings")


def _languages(value: Any) -> Tuple[Tuple[str, str], ...]:
    if not value:
        return ()
    if not isinstance(value, dict):
        raise ConfigError("'scan.languages' must map extensions to grammar names")
    out = {}
    for ext, name in value.items():
        if not isinstance(ext, str) or not isinstance(name, str):
            raise ConfigError("'scan.languages' must map extensions to grammar names")
        ext = ext.strip().lower()
        out[ext if ext.startswith(".") else "." + ext] = name.strip()
    return tuple(sorted(out.items()))


def _jobs(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError("'jobs' must be a positive integer")
    return value


def resolve_config(args: Any, config: Optional[Config] = None, cwd: Optional[str] = None) -> Tuple[ScanConfig, RunOptions]:
    """Merge CLI arguments over a loaded config file.

    CLI values win, flags are OR-ed with the file, CLI lists replace file
    lists, and paths from the file are relative to the file's directory.
    """
    cfg = config or Config()
    data = cfg.data
    scan, filt = data["scan"], data["filter"]
    cwd = cwd or os.getcwd()
    base = cfg.base_dir or cwd

    if _arg(args, "root"):
        root = os.path.join(cwd, _arg(args, "root"))
    elif data["root"]:
        root = os.path.join(base, str(data["root"]))
    else:
        root = base
    root = os.path.abspath(root)
    if not os.path.isdir(root):
        raise InvalidRootError(root)

    slugs = _arg(args, "slug") or _str_list(scan["slug"], "scan.slug")
    slugs = tuple(s.strip() for s in slugs if s.strip())
    if not slugs:
        raise NoSlugsError()

    fmt = _arg(args, "format") or data["format"]
    if fmt not in FORMATS:
        raise ConfigError(f"unknown format '{fmt}' (expected one of {', '.join(FORMATS)})")

    output = None
    if _arg(args, "output"):
        output = os.path.abspath(os.path.join(cwd, _arg(args, "output")))
    elif data["output"]:
        output = os.path.abspath(os.path.join(base, str(data["output"])))

    def flag(name: str, section: Dict[str, Any], key: str) -> bool:
        return bool(_arg(args, name)) or _bool(section.get(key), key)

    def globs(name: str) -> Tuple[str, ...]:
        return tuple(_arg(args, name) or _str_list(filt[name], f"filter.{name}"))

    scan_cfg = ScanConfig(
        root=root,
        slugs=slugs,
        include=globs("include"),
        exclude=globs("exclude"),
        force_include=globs("force_include"),
        include_vendored=flag("include_vendored", filt, "include_vendored"),
        include_generated=flag("include_generated", filt, "include_generated"),
        include_submodules=flag("include_submodules", filt, "include_submodules"),
        include_hidden=flag("include_hidden", filt, "include_hidden"),
        include_git_meta=flag("include_git_meta", data, "include_git_meta"),
        include_blame=flag("include_blame", data, "include_blame"),
        fallback_comments=flag("fallback_comments", scan, "fallback_comments"),
        languages=_languages(scan["languages"]),
        jobs=_jobs(_arg(args, "jobs") if _arg(args, "jobs") is not None else data["jobs"]),
    )
    opts = RunOptions(
        format=fmt,
        output=output,
        quiet=flag("quiet", data, "quiet"),
        fail_on_empty=flag("fail_on_empty", data, "fail_on_empty"),
    )
    return scan_cfg, opts
