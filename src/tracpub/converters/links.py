"""Resolution of relative links between managed documents.

A document may reference another managed document by relative path, e.g.
``[setup](../install/setup.md#linux)``.  Once the target has been created on
the remote, the reference is rewritten to the target's ``remote_uri``.  Until
then it is left as written and remembered as a *pending* link so the next
run knows to re-render the referring document.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Mapping, Protocol
from urllib.parse import unquote, urlsplit

from ..errors import LinkResolutionError
from ..publish.models import DocumentRecord

logger = logging.getLogger(__name__)

# [text](target) as written in Markdown source.
MARKDOWN_LINK_RE = re.compile(r"^\[(?P<text>.*?)\]\((?P<target>.+?)\)$")


class LinkResolver(Protocol):
    """Strategy consulted by renderers for every link they emit."""

    def wants(self, raw: str) -> bool:
        """Return True if *raw* is a reference this resolver handles."""
        ...

    def is_valid(self, text: str, reference: str) -> bool:
        """Return True if *reference* points at something resolvable."""
        ...

    def resolve(self, text: str, reference: str) -> str:
        """Return the final reference to emit."""
        ...


def split_fragment(reference: str) -> tuple[str, str]:
    """Split ``path#frag`` into ``("path", "#frag")``."""
    path, sep, fragment = reference.partition("#")
    return path, (sep + fragment if sep else "")


def is_relative_reference(reference: str) -> bool:
    """Return True for file-system style relative references."""
    if not reference or not reference.strip():
        return False
    if reference.startswith(("#", "/", "\\", "//")):
        return False
    if urlsplit(reference).scheme:
        return False
    return True


def resolve_link(
    resolver: LinkResolver | None, text: str, reference: str
) -> str | None:
    """Run *reference* through *resolver*.

    Returns:
        The resolved reference, or ``None`` when there is no resolver or it
        does not handle this link (so the renderer applies its own rules).
    """
    if resolver is None or not resolver.wants(reference):
        return None
    if not resolver.is_valid(text, reference):
        return None
    return resolver.resolve(text, reference)


class IndexLinkResolver:
    """Resolve relative links against the in-memory record set.

    Args:
        records: Current records keyed by absolute source path.
        document_dir: Directory of the document being rendered; relative
            references are resolved from here.
    """

    def __init__(
        self, records: Mapping[str, DocumentRecord], document_dir: Path
    ) -> None:
        self._records = records
        self._document_dir = Path(document_dir)
        self.deferred: list[str] = []
        self.resolved: list[str] = []

    def wants(self, raw: str) -> bool:
        match = MARKDOWN_LINK_RE.match(raw.strip()) if raw else None
        reference = match.group("target") if match else raw
        return is_relative_reference(reference)

    def target_path(self, reference: str) -> str:
        """Absolute POSIX path a relative *reference* points to."""
        path, _ = split_fragment(reference)
        joined = os.path.normpath(self._document_dir / unquote(path))
        return Path(joined).as_posix()

    def target_record(self, reference: str) -> DocumentRecord | None:
        record = self._records.get(self.target_path(reference))
        if record is None or record.orphaned:
            return None
        return record

    def is_valid(self, text: str, reference: str) -> bool:
        target = Path(self.target_path(reference))
        if not target.is_file():
            return False
        return self.target_record(reference) is not None

    def resolve(self, text: str, reference: str) -> str:
        record = self.target_record(reference)
        if record is None:
            raise LinkResolutionError(
                f"Link {reference!r} does not point at a managed document"
            )
        _, fragment = split_fragment(reference)
        if record.remote_uri is None:
            logger.debug(
                "Keeping local link %s until %s is published",
                reference,
                record.source_path,
            )
            self.deferred.append(reference)
            return reference
        self.resolved.append(reference)
        return record.remote_uri + fragment
