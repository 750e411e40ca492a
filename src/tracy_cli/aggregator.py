from __future__ import annotations
from typing import Dict, Iterable, List, Optional

from .models import Diagnostic, FileResult, ReferenceOccurrence, RepositoryMetadata, ScanReport


def aggregate(file_results: Iterable[FileResult], meta: Optional[RepositoryMetadata] = None) -> ScanReport:
    """Merge per-file results into one report keyed by requirement id.

    Occurrences are ordered by (file, line, column) before grouping, so the
    output does not depend on the order workers finished in. Ids are keyed in
    first-seen order over that sequence.
    """
    occurrences: List[ReferenceOccurrence] = []
    diagnostics: List[Diagnostic] = []
    files = 0
    for fr in file_results:
        files += 1
        occurrences.extend(fr.occurrences)
        diagnostics.extend(fr.diagnostics)

    occurrences.sort(key=lambda o: o.sort_key())
    results: Dict[str, List[ReferenceOccurrence]] = {}
    for occ in occurrences:
        results.setdefault(occ.requirement_id, []).append(occ)

    diagnostics.sort(key=lambda d: (d.path, d.stage))
    return ScanReport(results=results, meta=meta, diagnostics=diagnostics, files_scanned=files)
