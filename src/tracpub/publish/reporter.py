"""Report formatting functions.

Provides human-readable and machine-readable output for each phase:

- ``format_index_report`` -- discovery and reconciliation summary.
- ``format_stage_report`` -- convert/sync summary with itemised failures.
- ``format_status`` -- one line per record with its derived state.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import DocumentRecord, DocumentState, IndexReport, StageReport


def display_path(path: str, base_dir: Path | None = None) -> str:
    """Return *path* relative to *base_dir* when it lies below it."""
    if base_dir is None:
        return path
    try:
        return Path(path).relative_to(base_dir).as_posix()
    except ValueError:
        return path


# ------------------------------------------------------------------
# Human-readable reports
# ------------------------------------------------------------------


def format_index_report(report: IndexReport, base_dir: Path | None = None) -> str:
    """Format an index report as human-readable text.

    Sections are only included when they contain at least one entry.
    """
    lines = [
        f"Indexed {report.discovered} documents: "
        f"{len(report.added)} new, {len(report.orphaned)} orphaned, "
        f"{len(report.restored)} restored, {report.unchanged} unchanged",
        "",
    ]

    for title, paths in (
        ("New:", report.added),
        ("Orphaned (source missing, kept in index):", report.orphaned),
        ("Restored:", report.restored),
    ):
        if paths:
            lines.append(title)
            lines.extend(f"  {display_path(p, base_dir)}" for p in paths)
            lines.append("")

    if report.errors:
        lines.append("Input errors:")
        lines.extend(f"  {e}" for e in report.errors)
        lines.append("")

    return "\n".join(lines).rstrip()


def format_stage_report(report: StageReport, base_dir: Path | None = None) -> str:
    """Format a convert/sync report.

    The first line is ``<stage>: N succeeded, M failed``; every failure is
    listed so all problems can be fixed from one run's output.  Skipped
    records are summarised by count only.
    """
    lines = [report.summary(), ""]

    groups = (
        ("Created:", report.created, True),
        ("Updated:", report.updated, True),
        ("Converted:", report.converted, False),
    )
    for title, results, show_uri in groups:
        if results:
            lines.append(title)
            for r in results:
                target = f" -> {r.remote_uri}" if show_uri and r.remote_uri else ""
                lines.append(f"  {display_path(r.source_path, base_dir)}{target}")
            lines.append("")

    if report.errors:
        lines.append("Failures:")
        for i, r in enumerate(report.errors, start=1):
            lines.append(f"  {i}. {display_path(r.source_path, base_dir)}: {r.error}")
        lines.append("")

    if report.skipped:
        lines.append(f"Unchanged: {len(report.skipped)} documents")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_status(
    entries: list[tuple[DocumentRecord, DocumentState]],
    base_dir: Path | None = None,
) -> str:
    """Format ``Publisher.status()`` output, one record per line."""
    if not entries:
        return "No documents indexed."

    width = max(len(state.value) for _, state in entries)
    lines = []
    for record, state in entries:
        line = f"{state.value:<{width}}  {display_path(record.source_path, base_dir)}"
        if record.remote_uri:
            line += f"  {record.remote_uri}"
        lines.append(line)

    counts = Counter(state.value for _, state in entries)
    lines.append("")
    lines.append(", ".join(f"{n} {name}" for name, n in sorted(counts.items())))
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: IndexReport | StageReport) -> dict:
    """Convert an index or stage report to a JSON-serialisable dict."""
    data = report.model_dump(mode="json")
    if hasattr(report, "stage"):
        data["counts"] = {
            "total": len(report.results),
            "succeeded": len(report.succeeded),
            "failed": len(report.errors),
            "created": len(report.created),
            "updated": len(report.updated),
            "converted": len(report.converted),
            "skipped": len(report.skipped),
        }
    return data
