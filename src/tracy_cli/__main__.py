import argparse
import logging
import os
import sys

import structlog

from .config import FORMATS, find_config, load_config, resolve_config
from .errors import OutputError, TracyError
from .output import format_output
from .scanner import scan_repo
from .utils import write_output
from .version import __version__

logger = structlog.get_logger(__name__)


def configure_logging(verbose: bool = False) -> None:
    # stdout carries the report, so logs always go to stderr
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if verbose else logging.WARNING),
        logger_factory=lambda *args: structlog.PrintLogger(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tracy", description="Trace requirement ids referenced in source comments")
    parser.add_argument("--root", default=None, help="Directory to scan (default: config dir or cwd)")
    parser.add_argument("--format", choices=FORMATS, default=None, help="Output format (default: json)")
    cfg = parser.add_mutually_exclusive_group()
    cfg.add_argument("--config", default=None, help="Path to tracy.yml (default: search upward from cwd)")
    cfg.add_argument("--no-config", action="store_true", help="Do not load any config file")
    parser.add_argument("-o", "--output", default=None, help="Also write the report to this file")
    parser.add_argument("-q", "--quiet", action="store_true", help="Do not print the report to stdout")
    parser.add_argument("--fail-on-empty", action="store_true", help="Exit 1 when no references are found")
    parser.add_argument("--include-git-meta", action="store_true", help="Attach repository metadata")
    parser.add_argument("--include-blame", action="store_true", help="Attach git blame to each reference")
    parser.add_argument("--include-vendored", action="store_true", help="Scan linguist-vendored files")
    parser.add_argument("--include-generated", action="store_true", help="Scan linguist-generated files")
    parser.add_argument("--include-submodules", action="store_true", help="Descend into nested repositories")
    parser.add_argument("--include-hidden", action="store_true", help="Scan hidden files and directories")
    parser.add_argument("--include", action="append", metavar="GLOB", help="Only scan matching paths (repeatable)")
    parser.add_argument("--exclude", action="append", metavar="GLOB", help="Skip matching paths (repeatable)")
    parser.add_argument(
        "--force-include", action="append", metavar="GLOB", help="Scan matching paths even if ignored (repeatable)"
    )
    parser.add_argument("-s", "--slug", action="append", help="Requirement slug such as REQ (repeatable)")
    parser.add_argument("--jobs", type=int, default=None, help="Worker threads")
    parser.add_argument(
        "--fallback-comments", action="store_true", help="Scan unknown file types for # and // comments"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def emit(text, output=None, quiet=False):
    if not quiet:
        sys.stdout.write(text)
        sys.stdout.flush()
    if output:
        try:
            write_output(text, output)
        except OSError as e:
            raise OutputError(output, str(e)) from e
        print(f"Wrote {output}", file=sys.stderr)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = None
        if not args.no_config:
            path = args.config or find_config(os.getcwd())
            if path:
                config = load_config(path)
        scan_cfg, opts = resolve_config(args, config)
        report = scan_repo(scan_cfg)
        emit(format_output(opts.format, report), opts.output, opts.quiet)
    except TracyError as e:
        logger.error("tracy.failed", error=str(e))
        return 1

    if opts.fail_on_empty and report.total == 0:
        logger.error("tracy.no_references", slugs=list(scan_cfg.slugs), root=scan_cfg.root)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
