from __future__ import annotations
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable, List, Optional

import structlog

from .aggregator import aggregate
from .context import resolve_context
from .extractor import extract_comments
from .filters import FilterPolicy, list_candidate_files
from .git import GitError, blame, repository_metadata
from .grammars import Grammar, GrammarRegistry
from .matcher import ReferenceMatcher
from .models import Diagnostic, FileResult, ReferenceOccurrence, ScanConfig, ScanReport
from .utils import decode_source, to_rel

logger = structlog.get_logger(__name__)


def _references(rel: str, text: str, grammar: Grammar, matcher: ReferenceMatcher) -> List[ReferenceOccurrence]:
    extracted = extract_comments(rel, text, grammar)
    found: List[ReferenceOccurrence] = []
    for span in extracted.spans:
        for ref in matcher.matches(span):
            ctx = resolve_context(extracted.tree, span, ref.line)
            found.append(
                ReferenceOccurrence(
                    requirement_id=ref.requirement_id,
                    file=rel,
                    line=ref.line,
                    comment_text=span.text,
                    column=ref.column,
                    above=ctx.above,
                    below=ctx.below,
                    inline=ctx.inline,
                    scope=ctx.scope,
                    scopes=span.scopes,
                )
            )
    return found


def scan_file(
    root: str,
    rel: str,
    registry: GrammarRegistry,
    matcher: ReferenceMatcher,
    include_blame: bool = False,
) -> FileResult:
    """Extract, match and enrich references for one file. Never raises for bad input."""
    result = FileResult(rel)
    try:
        with open(os.path.join(root, rel), "rb") as f:
            data = f.read()
    except OSError as e:
        result.diagnostics.append(Diagnostic(rel, "read", str(e)))
        return result
    try:
        text = decode_source(data)
    except UnicodeDecodeError as e:
        result.diagnostics.append(Diagnostic(rel, "decode", str(e)))
        return result

    grammar = registry.grammar_for(rel, text.split("\n", 1)[0])
    if grammar is None:
        return result
    try:
        result.occurrences.extend(_references(rel, text, grammar, matcher))
    except Exception as e:
        # parser failures stay with their file
        result.diagnostics.append(Diagnostic(rel, "grammar", f"{grammar.name}: {type(e).__name__}: {e}"))
        return result

    if include_blame and result.occurrences:
        try:
            records = blame(root, rel, [o.line for o in result.occurrences])
        except GitError as e:
            result.diagnostics.append(Diagnostic(rel, "blame", str(e)))
        else:
            for occ in result.occurrences:
                occ.blame = records.get(occ.line)
    return result


def scan_files(
    root: str,
    rel_paths: Iterable[str],
    registry: GrammarRegistry,
    matcher: ReferenceMatcher,
    include_blame: bool = False,
    jobs: Optional[int] = None,
) -> List[FileResult]:
    results: List[FileResult] = []
    with ThreadPoolExecutor(max_workers=jobs) as pool:
        futures = [pool.submit(scan_file, root, rel, registry, matcher, include_blame) for rel in rel_paths]
        for fut in as_completed(futures):
            results.append(fut.result())
    return results


def scan_repo(cfg: ScanConfig, registry: Optional[GrammarRegistry] = None) -> ScanReport:
    # slug problems surface before any file is touched
    matcher = ReferenceMatcher(cfg.slugs)
    if registry is None:
        registry = GrammarRegistry.default(dict(cfg.languages), fallback_comments=cfg.fallback_comments)

    rel_paths = [to_rel(p, cfg.root) for p in list_candidate_files(cfg.root, FilterPolicy.from_config(cfg))]
    logger.debug("scan.started", root=cfg.root, files=len(rel_paths), slugs=list(cfg.slugs))

    meta = repository_metadata(cfg.root) if cfg.include_git_meta else None
    results = scan_files(cfg.root, rel_paths, registry, matcher, cfg.include_blame, cfg.jobs)
    report = aggregate(results, meta)

    for d in report.diagnostics:
        logger.warning("scan.file_skipped", path=d.path, stage=d.stage, error=d.message)
    if report.diagnostics:
        logger.warning("scan.diagnostics", count=len(report.diagnostics))
    logger.info(
        "scan.finished",
        files=report.files_scanned,
        references=report.total,
        requirements=len(report.results),
    )
    return report
