"""Publishing engine: the index -> convert -> sync pipeline.

The ``Publisher`` ties together the index store, discovery, reconciler,
conversion stage, sync stage and batch executor.  It:

1. Loads the index once, on first use (a corrupt index is fatal).
2. ``index()``: discovers documents and reconciles them into the records.
3. ``convert()``: renders every record whose source or links changed.
4. ``sync()``: creates or updates remote documents.
5. Saves the index after every phase, including failed ones, so progress
   made on unaffected records is never lost.

Per-record failures never stop sibling records.  Each stage raises one
``BatchError`` listing every failure once its progress is saved.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from functools import reduce
from pathlib import Path
from typing import Callable, Sequence

from ..config_schema import PublishConfig
from ..converters.renderers import Renderer, create_renderer
from ..errors import BatchError
from ..remotes.base import RemoteClient
from .batch import BatchExecutor, BatchOutcome
from .conversion import ConversionStage
from .discovery import discover_documents
from .index_store import IndexStore
from .models import (
    DocumentRecord,
    DocumentState,
    IndexReport,
    RecordResult,
    StageReport,
)
from .reconciler import reconcile
from .remote_sync import SyncStage, determine_state

logger = logging.getLogger(__name__)

PHASES = ("index", "convert", "sync")

# Renderer extensions that would be picked up again by discovery when
# written next to their sources.
_SOURCE_LIKE_EXTENSIONS = (".md", ".markdown")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Publisher:
    """Run the publishing pipeline for one project.

    Args:
        config: Immutable run configuration.
        base_dir: Project base directory; relative paths in *config* are
            resolved against it.
        store: Index store; defaults to ``config.index_path``.
        renderer: Renderer; defaults to ``config.renderer``.
        remote: Remote client, for callers that already have one.
        remote_factory: Called once, on first need, to build the remote.
        default_extra_properties: Properties sent with every document.
    """

    def __init__(
        self,
        config: PublishConfig,
        base_dir: Path | None = None,
        store: IndexStore | None = None,
        renderer: Renderer | None = None,
        remote: RemoteClient | None = None,
        remote_factory: Callable[[], RemoteClient] | None = None,
        default_extra_properties: dict[str, str] | None = None,
    ) -> None:
        self.config = config
        self.base_dir = Path(os.path.normpath(Path(base_dir or Path.cwd()).absolute()))
        self.store = store or IndexStore(
            self.base_dir / config.index_path, base_dir=self.base_dir
        )
        if renderer is None:
            footer_path = (
                self.base_dir / config.footer_path if config.footer_path else None
            )
            renderer = create_renderer(
                config.renderer, config.footer_enabled, footer_path
            )
        self.renderer = renderer
        self.output_root = self._output_root()
        self.conversion = ConversionStage(renderer, self.base_dir, self.output_root)
        self.executor = BatchExecutor(config.max_parallel)
        self.default_extra_properties = dict(default_extra_properties or {})

        self._remote = remote
        self._remote_factory = remote_factory
        self._records: dict[str, DocumentRecord] | None = None
        self.reports: dict[str, IndexReport | StageReport] = {}

    def _output_root(self) -> Path | None:
        if self.config.output_path:
            return Path(os.path.normpath(self.base_dir / self.config.output_path))
        if self.renderer.extension in _SOURCE_LIKE_EXTENSIONS:
            # Converted Markdown next to its source would be re-discovered.
            return self.store.path.parent / "converted"
        return None

    # ------------------------------------------------------------------
    # Lazily loaded collaborators
    # ------------------------------------------------------------------

    @property
    def records(self) -> dict[str, DocumentRecord]:
        """All records, loaded from the index on first access.

        Raises:
            IndexStoreError: If the index cannot be read.
        """
        if self._records is None:
            self._records = self.store.load()
        return self._records

    @property
    def remote(self) -> RemoteClient:
        """The remote client, created on first access.

        Raises:
            ValueError: If no remote is configured or its settings are
                incomplete.
        """
        if self._remote is None:
            if self._remote_factory is None:
                raise ValueError("No remote configured")
            self._remote = self._remote_factory()
            logger.debug("Using remote %s", getattr(self._remote, "name", "?"))
        return self._remote

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def index(self) -> IndexReport:
        """Discover documents and merge them into the index."""
        roots = [self.base_dir / p for p in self.config.search_paths]
        exclude = list(self.config.exclude)
        if self.output_root is not None:
            root = self.output_root.as_posix()
            exclude += [root, f"{root}/*"]

        found = discover_documents(roots, self.config.include, exclude)
        merged = reconcile(found.paths, self.records)
        self._records = merged.records
        self.store.save(self._records)

        report = merged.to_report(
            discovered=len(found.paths),
            errors=[e.describe() for e in found.errors],
        )
        self.reports["index"] = report
        logger.info(
            "Index: %d discovered, %d new, %d orphaned, %d restored",
            report.discovered,
            len(report.added),
            len(report.orphaned),
            len(report.restored),
        )
        return report

    def convert(self) -> StageReport:
        """Render every record that needs it.

        Raises:
            BatchError: If any record failed (after saving the others).
        """
        report, error = self._convert()
        if error is not None:
            raise error
        return report

    def sync(self) -> StageReport:
        """Publish every out-of-date record to the remote.

        Raises:
            BatchError: If any record failed (after saving the others).
        """
        report, error = self._sync()
        if error is not None:
            raise error
        return report

    def run(self, phases: Sequence[str] = PHASES) -> dict[str, IndexReport | StageReport]:
        """Run *phases* in order and return their reports.

        The remote is built before any phase when ``sync`` is requested, so
        missing credentials abort the run before anything changes.  Records
        that fail to convert are not synced in the same run.

        Raises:
            ValueError: On an unknown phase or unusable remote settings.
            IndexStoreError: If the index cannot be read or written.
            BatchError: Every per-record failure of every phase, raised
                once all phases have run.
        """
        unknown = [p for p in phases if p not in PHASES]
        if unknown:
            raise ValueError(f"Unknown phase(s): {', '.join(unknown)}")
        # Both raise before any phase has touched the index.
        if "sync" in phases:
            self.remote
        self.records

        errors: list[BatchError] = []
        failed_conversions: set[str] = set()
        for phase in phases:
            if phase == "index":
                self.index()
            elif phase == "convert":
                report, error = self._convert()
                failed_conversions = {r.source_path for r in report.errors}
                if error is not None:
                    errors.append(error)
            else:
                _, error = self._sync(skip=failed_conversions)
                if error is not None:
                    errors.append(error)

        if errors:
            raise reduce(BatchError.merge, errors)
        return dict(self.reports)

    def status(self) -> list[tuple[DocumentRecord, DocumentState]]:
        """Return every record with its derived state, sorted by path."""
        return [
            (record, determine_state(record))
            for _, record in sorted(self.records.items())
        ]

    # ------------------------------------------------------------------
    # Stage plumbing
    # ------------------------------------------------------------------

    def _convert(self) -> tuple[StageReport, BatchError | None]:
        def task(record: DocumentRecord) -> tuple[DocumentRecord, str]:
            updated, converted = self.conversion.convert_if_needed(
                record, self.records
            )
            return updated, "converted" if converted else "skipped"

        return self._run_stage("convert", task)

    def _sync(
        self, skip: set[str] | None = None
    ) -> tuple[StageReport, BatchError | None]:
        stage = SyncStage(
            self.remote,
            self.conversion,
            default_tags=self.config.default_tags,
            default_extra_properties=self.default_extra_properties,
        )

        def task(record: DocumentRecord) -> tuple[DocumentRecord, str]:
            return stage.sync(record, self.records)

        return self._run_stage("sync", task, skip=skip)

    def _run_stage(
        self,
        stage: str,
        task: Callable[[DocumentRecord], tuple[DocumentRecord, str]],
        skip: set[str] | None = None,
    ) -> tuple[StageReport, BatchError | None]:
        started_at = _now()
        skip = skip or set()
        items = [
            r
            for r in self.records.values()
            if not r.orphaned and r.source_path not in skip
        ]
        for source_path in sorted(skip):
            logger.warning("%s: skipping %s (failed earlier)", stage, source_path)

        def after(outcome: BatchOutcome) -> None:
            for _, (updated, _) in outcome.results:
                self.records[updated.source_path] = updated
            self.store.save(self.records)

        outcome = self.executor.execute(stage, items, task, after=after)

        done = {item.source_path: result for item, result in outcome.results}
        failed = {f.source_path: f for f in outcome.failures if f.source_path}
        results = []
        for item in items:
            if item.source_path in done:
                updated, action = done[item.source_path]
                results.append(
                    RecordResult(
                        source_path=item.source_path,
                        action=action,
                        success=True,
                        remote_uri=updated.remote_uri,
                    )
                )
            elif item.source_path in failed:
                results.append(
                    RecordResult(
                        source_path=item.source_path,
                        action="failed",
                        success=False,
                        remote_uri=item.remote_uri,
                        error=failed[item.source_path].describe(),
                    )
                )

        report = StageReport(
            stage=stage,
            results=results,
            started_at=started_at,
            completed_at=_now(),
        )
        self.reports[stage] = report
        return report, outcome.error()
