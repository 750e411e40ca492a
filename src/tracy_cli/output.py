"""Report encoders. Each takes a finished ScanReport and returns text."""
from __future__ import annotations
import csv
import io
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .models import CodeContext, ReferenceOccurrence, RepositoryMetadata, ScanReport
from .renderer import render_markdown
from .version import __version__

SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"

CSV_HEADER = [
    "id",
    "file",
    "line",
    "comment_text",
    "above",
    "below",
    "inline",
    "scope",
    "blame_commit",
    "blame_author",
    "blame_time",
    "blame_summary",
    "repo_root",
    "head_sha",
    "head_ref",
]


def _dumps(obj: Any, indent: Optional[int] = 2) -> str:
    return json.dumps(obj, indent=indent, ensure_ascii=False)


def results_dict(report: ScanReport) -> Dict[str, List[Dict[str, Any]]]:
    return {req_id: [e.to_dict() for e in entries] for req_id, entries in report.results.items()}


def encode_json(report: ScanReport) -> str:
    results = results_dict(report)
    if report.meta is None:
        return _dumps(results) + "\n"
    return _dumps({"meta": report.meta.to_dict(), "results": results}) + "\n"


def encode_jsonl(report: ScanReport) -> str:
    lines = []
    if report.meta is not None:
        lines.append(_dumps({"type": "meta", "meta": report.meta.to_dict()}, indent=None))
    for req_id, entry in report.occurrences():
        record = {"type": "match", "requirement_id": req_id, "entry": entry.to_dict()}
        lines.append(_dumps(record, indent=None))
    return "".join(line + "\n" for line in lines)


def _text(ctx: Optional[CodeContext]) -> str:
    return ctx.text if ctx is not None else ""


def iso_utc(epoch: Optional[int]) -> str:
    if epoch is None:
        return ""
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def encode_csv(report: ScanReport) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    meta = report.meta
    for req_id, e in report.occurrences():
        b = e.blame
        writer.writerow(
            [
                req_id,
                e.file,
                e.line,
                e.comment_text,
                _text(e.above),
                _text(e.below),
                _text(e.inline),
                f"{e.scope.kind}:{e.scope.name}" if e.scope else "",
                b.commit if b else "",
                (b.author or "") if b else "",
                iso_utc(b.author_time) if b else "",
                (b.summary or "") if b else "",
                meta.repo_root if meta else "",
                meta.head_sha if meta else "",
                (meta.head_ref or "") if meta else "",
            ]
        )
    return buf.getvalue()


def _sarif_properties(e: ReferenceOccurrence) -> Dict[str, Any]:
    props = e.to_dict()
    for key in ("file", "line", "comment_text"):
        props.pop(key)
    return props


def _provenance(meta: RepositoryMetadata) -> List[Dict[str, Any]]:
    remotes = dict(meta.remotes)
    if not remotes:
        return []
    url = remotes.get("origin") or remotes[sorted(remotes)[0]]
    entry: Dict[str, Any] = {"repositoryUri": url, "revisionId": meta.head_sha}
    if meta.head_ref:
        entry["branch"] = meta.head_ref
    return [entry]


def encode_sarif(report: ScanReport) -> str:
    rule_ids = list(report.results)
    rule_index = {rid: i for i, rid in enumerate(rule_ids)}
    rules = [
        {"id": rid, "name": rid, "shortDescription": {"text": f"Reference to requirement {rid}"}}
        for rid in rule_ids
    ]
    results = []
    for req_id, e in report.occurrences():
        result: Dict[str, Any] = {
            "ruleId": req_id,
            "ruleIndex": rule_index[req_id],
            "level": "note",
            "message": {"text": e.comment_text},
            "locations": [
                {
                    "physicalLocation": {
                        "artifactLocation": {"uri": e.file, "uriBaseId": "SRCROOT"},
                        "region": {"startLine": e.line, "startColumn": e.column + 1},
                    }
                }
            ],
        }
        props = _sarif_properties(e)
        if props:
            result["properties"] = props
        results.append(result)

    run: Dict[str, Any] = {
        "tool": {"driver": {"name": "tracy", "version": __version__, "rules": rules}},
        "results": results,
    }
    if report.meta is not None:
        run["properties"] = report.meta.to_dict()
        provenance = _provenance(report.meta)
        if provenance:
            run["versionControlProvenance"] = provenance
    return _dumps({"$schema": SARIF_SCHEMA, "version": "2.1.0", "runs": [run]}) + "\n"


ENCODERS: Dict[str, Callable[[ScanReport], str]] = {
    "json": encode_json,
    "jsonl": encode_jsonl,
    "csv": encode_csv,
    "sarif": encode_sarif,
    "markdown": render_markdown,
}


def format_output(fmt: str, report: ScanReport) -> str:
    try:
        encoder = ENCODERS[fmt]
    except KeyError:
        raise ValueError(f"unknown output format: {fmt}") from None
    return encoder(report)
