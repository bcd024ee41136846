"""Pydantic models for the publishing pipeline.

Defines the core data contracts used across all publish modules:

- ``DocumentState``: Enum of per-record publication states.
- ``DocumentRecord``: Persisted state of one managed document.
- ``RecordResult``: Outcome of processing one record in a stage.
- ``StageReport``: Aggregate results for one convert/sync stage.
- ``IndexReport``: Outcome of discovery plus reconciliation.

All models are frozen (immutable).  Stages never mutate a record in place;
they build an updated copy with ``model_copy(update=...)`` and hand it back
to the engine, so a failed operation cannot leave a half-written record.
"""

from __future__ import annotations

from enum import Enum
from pathlib import PurePath

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class DocumentState(str, Enum):
    """Publication state of a record, derived from its persisted fields."""

    NEW = "new"
    OUT_OF_DATE = "out_of_date"
    IN_SYNC = "in_sync"
    ORPHANED = "orphaned"


class DocumentRecord(BaseModel):
    """State of a single managed document in the index.

    Attributes:
        source_path: Absolute POSIX path of the source file (index key).
        title: Human-readable name; defaults to the file stem.
        source_checksum: SHA-256 of the normalised source at last conversion.
        source_modified_at: Source mtime at last conversion.
        converted_checksum: SHA-256 of the last rendered output.
        synced_checksum: ``converted_checksum`` at the last remote write.
        pending_links: Relative references to managed documents that had no
            remote URI yet when this document was last rendered.
        remote_uri: Location of the published page; ``None`` until created.
        remote_last_synced_at: ISO 8601 timestamp of the last remote write.
        extra_properties: Opaque remote-specific identifiers.
        tags: Ordered labels sent to the remote.
        orphaned: True when the source file is no longer discovered.
    """

    source_path: str
    title: str
    source_checksum: str | None = None
    source_modified_at: float | None = None
    converted_checksum: str | None = None
    synced_checksum: str | None = None
    pending_links: list[str] = Field(default_factory=list)
    remote_uri: str | None = None
    remote_last_synced_at: str | None = None
    extra_properties: dict[str, str] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    orphaned: bool = False

    # Unknown keys in the index file survive a load/save round trip.
    model_config = ConfigDict(frozen=True, extra="allow")

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, tags: list[str]) -> list[str]:
        return list(dict.fromkeys(tags))

    @model_validator(mode="after")
    def _check_remote_fields(self) -> DocumentRecord:
        if self.remote_uri is None and self.remote_last_synced_at is not None:
            raise ValueError(
                f"{self.source_path}: remote_last_synced_at set without remote_uri"
            )
        return self

    @classmethod
    def for_source(
        cls, source_path: str, tags: list[str] | None = None
    ) -> DocumentRecord:
        """Create a fresh record for a newly discovered source file."""
        return cls(
            source_path=source_path,
            title=PurePath(source_path).stem,
            tags=list(tags or []),
        )

    @property
    def file_name(self) -> str:
        return PurePath(self.source_path).name

    def with_extra_properties(self, extra: dict[str, str]) -> DocumentRecord:
        """Return a copy with *extra* merged over the existing properties."""
        merged = dict(self.extra_properties)
        merged.update(extra)
        return self.model_copy(update={"extra_properties": merged})


class RecordResult(BaseModel):
    """Result of processing one record in a stage.

    Attributes:
        source_path: Source path of the record.
        action: What the stage did (``"created"``, ``"updated"``,
            ``"converted"``, ``"skipped"``, ``"failed"``).
        success: Whether the operation succeeded.
        remote_uri: Remote URI after the operation, if any.
        error: Error description if the operation failed.
    """

    source_path: str
    action: str
    success: bool
    remote_uri: str | None = None
    error: str | None = None

    model_config = {"frozen": True}


class StageReport(BaseModel):
    """Aggregate report for one convert or sync stage.

    Attributes:
        stage: Stage name.
        results: Individual results, in processing order.
        started_at: ISO 8601 timestamp when the stage started.
        completed_at: ISO 8601 timestamp when the stage completed.
    """

    stage: str
    results: list[RecordResult] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def _with_action(self, action: str) -> list[RecordResult]:
        return [r for r in self.results if r.action == action]

    @property
    def created(self) -> list[RecordResult]:
        return self._with_action("created")

    @property
    def updated(self) -> list[RecordResult]:
        return self._with_action("updated")

    @property
    def converted(self) -> list[RecordResult]:
        return self._with_action("converted")

    @property
    def skipped(self) -> list[RecordResult]:
        return self._with_action("skipped")

    @property
    def errors(self) -> list[RecordResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def succeeded(self) -> list[RecordResult]:
        return [r for r in self.results if r.success]

    def summary(self) -> str:
        """One-line ``N succeeded, M failed`` summary."""
        return (
            f"{self.stage}: {len(self.succeeded)} succeeded, "
            f"{len(self.errors)} failed"
        )


class IndexReport(BaseModel):
    """Outcome of an index run (discovery + reconciliation).

    Attributes:
        discovered: Number of files matched on the search paths.
        added: Source paths that received a new record.
        orphaned: Source paths newly flagged as orphaned.
        restored: Previously orphaned paths that were found again.
        unchanged: Number of records present before and after.
        errors: Input errors reported by discovery.
    """

    discovered: int
    added: list[str] = []
    orphaned: list[str] = []
    restored: list[str] = []
    unchanged: int = 0
    errors: list[str] = []

    model_config = {"frozen": True}
