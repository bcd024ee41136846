"""Document publishing pipeline.

Keeps a durable JSON index of managed Markdown documents and drives them
through three phases: index (discovery + reconciliation), convert and sync.

Modules:

- ``models``      -- ``DocumentRecord``, ``DocumentState`` and report models.
- ``index_store`` -- ``IndexStore``: atomic load/save of the index file.
- ``discovery``   -- ``discover_documents``: include/exclude file walk.
- ``reconciler``  -- ``reconcile``: merge discovery into the records.
- ``conversion``  -- ``ConversionStage``: render changed documents.
- ``remote_sync`` -- ``SyncStage``: create/update remote documents.
- ``batch``       -- ``BatchExecutor``: bounded, failure-isolating runs.
- ``engine``      -- ``Publisher``: the pipeline driver.
- ``reporter``    -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from pathlib import Path
    from tracpub.config_schema import PublishConfig
    from tracpub.publish.engine import Publisher
    from tracpub.remotes import NoopRemote

    publisher = Publisher(
        PublishConfig(search_paths=["docs"]),
        base_dir=Path("."),
        remote=NoopRemote(),
    )
    publisher.run(["index", "convert", "sync"])

``engine``, ``conversion`` and ``remote_sync`` are not re-exported here
because they depend on ``tracpub.converters``, which itself imports
``models``.
"""

from .batch import BatchExecutor, BatchOutcome
from .discovery import DEFAULT_INCLUDE, DiscoveryResult, discover_documents
from .index_store import IndexStore, content_hash
from .models import (
    DocumentRecord,
    DocumentState,
    IndexReport,
    RecordResult,
    StageReport,
)
from .reconciler import ReconcileResult, reconcile

__all__ = [
    "BatchExecutor",
    "BatchOutcome",
    "DEFAULT_INCLUDE",
    "DiscoveryResult",
    "DocumentRecord",
    "DocumentState",
    "IndexReport",
    "IndexStore",
    "RecordResult",
    "ReconcileResult",
    "StageReport",
    "content_hash",
    "discover_documents",
    "reconcile",
]
