from __future__ import annotations


class TracyError(Exception):
    """Base class for errors that abort a run."""


class ConfigError(TracyError):
    pass


class NoSlugsError(ConfigError):
    def __init__(self):
        super().__init__("no slugs configured (use --slug or scan.slug in tracy.yml)")


class InvalidRootError(ConfigError):
    def __init__(self, root: str):
        super().__init__(f"scan root is not a directory: {root}")
        self.root = root


class OutputError(TracyError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"failed to write output file {path}: {reason}")
        self.path = path
