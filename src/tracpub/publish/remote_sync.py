"""Sync stage: push converted documents to the remote.

Per-record state machine (derived each run, never stored):

* ``NEW``         -- no ``remote_uri``: call ``remote.create``.
* ``OUT_OF_DATE`` -- converted output differs from what was last sent:
  call ``remote.update``.
* ``IN_SYNC``     -- nothing to do, no remote call.
* ``ORPHANED``    -- source gone: never reaches the remote.

A record that needs (re)conversion is converted first, so ``sync`` can be
run on its own.  Every failure is raised for the batch executor to collect;
the caller's record is never modified.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Mapping

from ..errors import RemoteError
from ..remotes.base import RemoteClient
from .conversion import ConversionStage
from .models import DocumentRecord, DocumentState

logger = logging.getLogger(__name__)


def determine_state(record: DocumentRecord) -> DocumentState:
    """Derive the publication state of *record* from its stored fields."""
    if record.orphaned:
        return DocumentState.ORPHANED
    if record.remote_uri is None:
        return DocumentState.NEW
    if (
        record.synced_checksum is None
        or record.converted_checksum != record.synced_checksum
    ):
        return DocumentState.OUT_OF_DATE
    return DocumentState.IN_SYNC


def _merge_unique(*groups: list[str]) -> list[str]:
    merged: list[str] = []
    for group in groups:
        for item in group:
            if item not in merged:
                merged.append(item)
    return merged


class SyncStage:
    """Create or update remote documents.

    Args:
        remote: The remote selected for this run.
        conversion: Conversion stage used for "convert as needed".
        default_tags: Tags sent with every document, before its own.
        default_extra_properties: Properties sent with every document;
            a record's own values win.
    """

    def __init__(
        self,
        remote: RemoteClient,
        conversion: ConversionStage,
        default_tags: list[str] | None = None,
        default_extra_properties: dict[str, str] | None = None,
    ) -> None:
        self.remote = remote
        self.conversion = conversion
        self.default_tags = list(default_tags or [])
        self.default_extra_properties = dict(default_extra_properties or {})

    def outbound(self, record: DocumentRecord) -> DocumentRecord:
        """Return the view of *record* handed to the remote (defaults applied)."""
        extra = dict(self.default_extra_properties)
        extra.update(record.extra_properties)
        return record.model_copy(
            update={
                "tags": _merge_unique(self.default_tags, record.tags),
                "extra_properties": extra,
            }
        )

    def sync(
        self, record: DocumentRecord, records: Mapping[str, DocumentRecord]
    ) -> tuple[DocumentRecord, str]:
        """Bring the remote copy of *record* up to date.

        Returns:
            ``(updated_record, action)`` with action ``"created"``,
            ``"updated"`` or ``"skipped"``.

        Raises:
            ConversionError: If on-the-fly conversion fails.
            RemoteError: If the remote call fails or answers malformed.
        """
        if record.orphaned:
            return record, "skipped"

        record, _ = self.conversion.convert_if_needed(record, records)
        state = determine_state(record)
        if state is DocumentState.IN_SYNC:
            logger.debug("%s is in sync", record.source_path)
            return record, "skipped"

        content = self.conversion.read_converted(record)
        outbound = self.outbound(record)

        if state is DocumentState.NEW:
            response = self.remote.create(outbound, content)
            if not response.remote_uri:
                raise RemoteError(
                    "Remote create returned no remote URI", record
                )
            action = "created"
        else:
            response = self.remote.update(outbound, content)
            action = "updated"

        updated = record.with_extra_properties(response.extra_properties)
        updated = updated.model_copy(
            update={
                "remote_uri": response.remote_uri or record.remote_uri,
                "remote_last_synced_at": datetime.now(timezone.utc).isoformat(),
                "synced_checksum": record.converted_checksum,
            }
        )
        logger.info("%s %s (%s)", action.capitalize(), record.source_path, updated.remote_uri)
        return updated, action
