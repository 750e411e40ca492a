from __future__ import annotations
import os
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .models import Scope, ScanReport


def _cell(text: str) -> str:
    return " ".join(str(text).split()).replace("|", "\\|")


def _scope_label(scope: Optional[Scope]) -> str:
    if scope is None:
        return ""
    return f"{scope.kind} `{scope.name}`"


def _env() -> Environment:
    tmpl_dir = os.path.join(os.path.dirname(__file__), "templates")
    env = Environment(
        loader=FileSystemLoader(tmpl_dir),
        autoescape=select_autoescape(),
        trim_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["cell"] = _cell
    env.filters["scope_label"] = _scope_label
    return env


def render_markdown(report: ScanReport) -> str:
    """Traceability matrix: one table per requirement id."""
    tmpl = _env().get_template("report.md.j2")
    return tmpl.render(
        results=report.results,
        meta=report.meta,
        total=report.total,
        files_scanned=report.files_scanned,
    )
