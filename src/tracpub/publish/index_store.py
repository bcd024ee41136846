"""Index persistence layer.

Manages the JSON index file (``.tracpub/index.json`` by default) that maps
every managed source document to its ``DocumentRecord``.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so a crash never leaves a truncated index behind.
* **Deterministic output** -- keys are sorted and no timestamp is written,
  so saving an unchanged index produces a byte-identical file.
* **Portable paths** -- source paths below the base directory are stored
  relative to it and re-absolutised on load.
* **Content hashing** -- ``content_hash()`` normalises content (BOM,
  line-endings, trailing whitespace) before SHA-256 so hashes are stable
  across platforms.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path, PurePosixPath

from pydantic import ValidationError

from ..errors import IndexStoreError
from .models import DocumentRecord

logger = logging.getLogger(__name__)

INDEX_VERSION = 1


def content_hash(content: str) -> str:
    """Compute a normalised SHA-256 hex digest of *content*.

    Normalisation steps (applied in order):

    1. Strip BOM (``\\ufeff``).
    2. Replace ``\\r\\n`` with ``\\n``.
    3. Right-strip each line.
    4. Strip trailing empty lines.
    """
    text = content.lstrip("\ufeff").replace("\r\n", "\n")
    lines = [line.rstrip() for line in text.split("\n")]
    while lines and lines[-1] == "":
        lines.pop()
    return hashlib.sha256("\n".join(lines).encode("utf-8")).hexdigest()


class IndexStore:
    """Load and save the document index.

    Args:
        path: Location of the index file.
        base_dir: Directory that relative keys are resolved against.
            Defaults to the directory containing the index file.
    """

    def __init__(self, path: Path, base_dir: Path | None = None) -> None:
        self._path = Path(os.path.normpath(Path(path).absolute()))
        self._base_dir = Path(
            os.path.normpath(Path(base_dir or self._path.parent).absolute())
        )

    @property
    def path(self) -> Path:
        return self._path

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> dict[str, DocumentRecord]:
        """Load all records from disk.

        Returns:
            Mapping of absolute source path to record.  A missing index
            file yields an empty mapping.

        Raises:
            IndexStoreError: If the file cannot be read, is not valid JSON,
                has an unsupported version, or holds an invalid record.
        """
        if not self._path.exists():
            logger.debug("No index at %s, starting empty", self._path)
            return {}

        try:
            with open(self._path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            raise IndexStoreError(
                f"Cannot read index {self._path}: {exc}"
            ) from exc

        if not isinstance(data, dict) or data.get("version") != INDEX_VERSION:
            raise IndexStoreError(
                f"Unsupported index format in {self._path} "
                f"(expected version {INDEX_VERSION})"
            )

        documents = data.get("documents", {})
        if not isinstance(documents, dict):
            raise IndexStoreError(
                f"Corrupt index {self._path}: 'documents' is not a mapping"
            )

        records: dict[str, DocumentRecord] = {}
        for key, fields in documents.items():
            source_path = self._absolute(key)
            if not isinstance(fields, dict):
                raise IndexStoreError(
                    f"Corrupt index {self._path}: entry {key!r} is not a mapping"
                )
            fields = {k: v for k, v in fields.items() if k != "source_path"}
            try:
                records[source_path] = DocumentRecord(
                    source_path=source_path, **fields
                )
            except ValidationError as exc:
                raise IndexStoreError(
                    f"Corrupt index {self._path}: invalid entry {key!r}: {exc}"
                ) from exc

        logger.debug("Loaded %d records from %s", len(records), self._path)
        return records

    def save(self, records: dict[str, DocumentRecord]) -> None:
        """Persist *records* to disk atomically.

        Creates the index directory if needed.

        Raises:
            IndexStoreError: If the file cannot be written.
        """
        documents = {}
        for source_path in sorted(records):
            record = records[source_path]
            documents[self._relative(source_path)] = record.model_dump(
                mode="json", exclude={"source_path"}
            )
        payload = {"version": INDEX_VERSION, "documents": documents}
        text = json.dumps(payload, indent=2, sort_keys=True) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self._path.parent), suffix=".tmp"
            )
        except OSError as exc:
            raise IndexStoreError(
                f"Cannot write index {self._path}: {exc}"
            ) from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp_path, self._path)
        except BaseException as exc:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            if isinstance(exc, OSError):
                raise IndexStoreError(
                    f"Cannot write index {self._path}: {exc}"
                ) from exc
            raise

        logger.debug("Saved %d records to %s", len(records), self._path)

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def _relative(self, source_path: str) -> str:
        """Return the storage key for *source_path*."""
        try:
            rel = Path(source_path).relative_to(self._base_dir)
        except ValueError:
            return source_path
        return rel.as_posix()

    def _absolute(self, key: str) -> str:
        """Return the absolute source path for a storage key."""
        if PurePosixPath(key).is_absolute() or Path(key).is_absolute():
            return key
        return (self._base_dir / key).as_posix()
