"""Merge freshly discovered files into the persisted record set.

* Discovered paths with no record get a new ``DocumentRecord``.
* Records whose file was not discovered are flagged ``orphaned``; they are
  never deleted and never synced.
* Orphaned records whose file reappears are un-flagged ("restored").
* All other records are carried over untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .models import DocumentRecord, IndexReport

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Merged records plus the changes made while merging."""

    records: dict[str, DocumentRecord]
    added: list[str] = field(default_factory=list)
    orphaned: list[str] = field(default_factory=list)
    restored: list[str] = field(default_factory=list)
    unchanged: int = 0

    def to_report(self, discovered: int, errors: list[str]) -> IndexReport:
        return IndexReport(
            discovered=discovered,
            added=self.added,
            orphaned=self.orphaned,
            restored=self.restored,
            unchanged=self.unchanged,
            errors=errors,
        )


def reconcile(
    discovered: list[str], records: dict[str, DocumentRecord]
) -> ReconcileResult:
    """Merge *discovered* source paths with the prior *records*.

    Args:
        discovered: Absolute source paths from discovery.
        records: Prior records keyed by source path.  Not modified.

    Returns:
        A ``ReconcileResult`` whose ``records`` keep the prior order with
        new records appended in discovery order.
    """
    present = set(discovered)
    merged: dict[str, DocumentRecord] = {}
    result = ReconcileResult(records=merged)

    for source_path, record in records.items():
        if source_path in present:
            if record.orphaned:
                record = record.model_copy(update={"orphaned": False})
                result.restored.append(source_path)
                logger.info("Restored %s", source_path)
            else:
                result.unchanged += 1
        elif not record.orphaned:
            record = record.model_copy(update={"orphaned": True})
            result.orphaned.append(source_path)
            logger.warning("Source missing, flagging as orphaned: %s", source_path)
        merged[source_path] = record

    for source_path in discovered:
        if source_path not in merged:
            merged[source_path] = DocumentRecord.for_source(source_path)
            result.added.append(source_path)
            logger.info("New document %s", source_path)

    return result
