"""Conversion stage: render source documents that changed since last time.

The converted path of a record is never persisted; it is recomputed from
the source path, the output root and the renderer's extension on every run
so the output root can be moved freely.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

from ..converters.links import IndexLinkResolver
from ..converters.renderers import Renderer
from ..errors import ConversionError
from .index_store import content_hash
from .models import DocumentRecord

logger = logging.getLogger(__name__)


def converted_path_for(
    record: DocumentRecord,
    extension: str,
    base_dir: Path,
    output_root: Path | None = None,
) -> Path:
    """Compute where the rendered form of *record* is written.

    With an output root the source's position relative to *base_dir* is
    mirrored below it (sources outside *base_dir* land at its top level).
    Without one the converted file sits next to its source.

    Raises:
        ConversionError: If the result would overwrite the source file.
    """
    source = Path(record.source_path)
    if output_root is None:
        target = source.with_suffix(extension)
    else:
        try:
            rel = source.relative_to(base_dir)
        except ValueError:
            rel = Path(source.name)
        target = Path(output_root) / rel.with_suffix(extension)

    if target == source:
        raise ConversionError(
            f"Converted path {target} would overwrite its source; "
            "configure an output path",
            record,
        )
    return target


class ConversionStage:
    """Decide whether a record needs rendering and render it.

    Args:
        renderer: The renderer selected for this run.
        base_dir: Project base directory.
        output_root: Directory for converted files, or ``None`` to write
            them next to their sources.
    """

    def __init__(
        self,
        renderer: Renderer,
        base_dir: Path,
        output_root: Path | None = None,
    ) -> None:
        self.renderer = renderer
        self.base_dir = Path(base_dir)
        self.output_root = Path(output_root) if output_root else None

    def converted_path(self, record: DocumentRecord) -> Path:
        return converted_path_for(
            record, self.renderer.extension, self.base_dir, self.output_root
        )

    def read_converted(self, record: DocumentRecord) -> str:
        """Return the current converted text of *record*.

        Raises:
            ConversionError: If the converted file cannot be read.
        """
        path = self.converted_path(record)
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise ConversionError(
                f"Cannot read converted file {path}", record
            ) from exc

    # ------------------------------------------------------------------
    # Change detection
    # ------------------------------------------------------------------

    def reasons_to_convert(
        self, record: DocumentRecord, records: Mapping[str, DocumentRecord]
    ) -> list[str]:
        """List why *record* must be (re)rendered; empty when up to date.

        Raises:
            ConversionError: If the source file cannot be read.
        """
        source = Path(record.source_path)
        try:
            source_text = source.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise ConversionError(f"Cannot read source {source}", record) from exc

        reasons = []
        if content_hash(source_text) != record.source_checksum:
            reasons.append("source changed")

        converted = self.converted_path(record)
        if not converted.is_file():
            reasons.append("converted file missing")
        elif record.converted_checksum is not None:
            current = converted.read_text(encoding="utf-8", errors="replace")
            if content_hash(current) != record.converted_checksum:
                reasons.append("converted file modified")

        if record.pending_links:
            resolver = IndexLinkResolver(records, source.parent)
            ready = []
            for link in record.pending_links:
                target = resolver.target_record(link)
                if target is not None and target.remote_uri is not None:
                    ready.append(link)
            if ready:
                reasons.append(f"links now resolvable: {', '.join(ready)}")
        return reasons

    def needs_conversion(
        self, record: DocumentRecord, records: Mapping[str, DocumentRecord]
    ) -> bool:
        return bool(self.reasons_to_convert(record, records))

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def convert(
        self, record: DocumentRecord, records: Mapping[str, DocumentRecord]
    ) -> DocumentRecord:
        """Render *record* and return the updated copy.

        The input record is never modified, so on failure the caller still
        holds the prior convert state.

        Raises:
            ConversionError: If reading, rendering or writing fails.
            LinkResolutionError: If a document link cannot be resolved.
        """
        source = Path(record.source_path)
        target = self.converted_path(record)
        resolver = IndexLinkResolver(records, source.parent)

        output = self.renderer.convert(record, source, target, resolver)

        try:
            source_text = source.read_text(encoding="utf-8", errors="replace")
            modified_at = source.stat().st_mtime
        except OSError as exc:
            raise ConversionError(f"Cannot read source {source}", record) from exc

        if resolver.deferred:
            logger.info(
                "%s: %d link(s) kept local until their targets are published",
                record.source_path,
                len(resolver.deferred),
            )
        return record.model_copy(
            update={
                "source_checksum": content_hash(source_text),
                "source_modified_at": modified_at,
                "converted_checksum": content_hash(output),
                "pending_links": sorted(set(resolver.deferred)),
            }
        )

    def convert_if_needed(
        self, record: DocumentRecord, records: Mapping[str, DocumentRecord]
    ) -> tuple[DocumentRecord, bool]:
        """Convert *record* when required.

        Returns:
            ``(record, converted)`` where *converted* tells whether the
            renderer ran.
        """
        reasons = self.reasons_to_convert(record, records)
        if not reasons:
            return record, False
        logger.debug("Converting %s (%s)", record.source_path, "; ".join(reasons))
        return self.convert(record, records), True
