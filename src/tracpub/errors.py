"""Exception types raised while indexing, converting and publishing documents.

Errors fall into four groups:

* **Input errors** -- ``DiscoveryError``: an unreadable search path or a
  malformed pattern.  Only the affected path is skipped.
* **Per-record errors** -- ``ConversionError``, ``LinkResolutionError``,
  ``RemoteError`` and ``RemoteTimeoutError``.  They carry the record being
  processed and are collected by the batch executor.
* **Aggregate errors** -- ``BatchError``: raised once at the end of a stage
  when at least one record failed.
* **Fatal errors** -- ``IndexStoreError`` (and ``ValueError`` from the
  configuration layer) abort the run before any stage executes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .publish.models import DocumentRecord


class TracpubError(Exception):
    """Base class for all tracpub errors.

    Args:
        message: Human-readable description.
        record: The document record being processed, if any.
    """

    def __init__(
        self, message: str, record: DocumentRecord | None = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.record = record

    @property
    def source_path(self) -> str | None:
        """Source path of the record attached to this error, if any."""
        return self.record.source_path if self.record else None

    def describe(self) -> str:
        """Return a one-line description including record and root cause."""
        parts = [self.message]
        if self.record is not None:
            parts.append(f"[document: {self.record.source_path}]")
        cause = self.__cause__
        if cause is not None and str(cause) not in self.message:
            parts.append(f"(caused by {type(cause).__name__}: {cause})")
        return " ".join(parts)

    def __str__(self) -> str:
        return self.describe()


class DiscoveryError(TracpubError):
    """A search root or pattern could not be used during discovery."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class ConversionError(TracpubError):
    """Rendering a source document failed."""


class LinkResolutionError(TracpubError):
    """A reference to another managed document could not be resolved."""


class RemoteError(TracpubError):
    """A remote create/update call failed.

    Args:
        message: Human-readable description.
        record: The document record being published.
        request: Description of the request, e.g. ``"wiki.putPage Guide"``.
        status_code: HTTP status code when the server answered.
    """

    def __init__(
        self,
        message: str,
        record: DocumentRecord | None = None,
        request: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, record)
        self.request = request
        self.status_code = status_code

    def describe(self) -> str:
        text = super().describe()
        if self.request:
            text += f" [request: {self.request}]"
        if self.status_code is not None:
            text += f" [status: {self.status_code}]"
        return text


class RemoteTimeoutError(RemoteError):
    """A remote call exceeded the configured timeout."""


class IndexStoreError(TracpubError):
    """The index file could not be read or written."""


class BatchError(TracpubError):
    """One or more records failed during a stage.

    Args:
        stage: Name of the stage (``"convert"``, ``"sync"``, ...).
        total: Number of records the stage processed.
        failures: Every per-record failure, in processing order.
    """

    def __init__(
        self,
        stage: str,
        total: int,
        failures: list[TracpubError],
    ) -> None:
        self.stage = stage
        self.total = total
        self.failures = list(failures)
        super().__init__(
            f"{stage}: {self.succeeded} succeeded, {len(self.failures)} failed"
        )

    @property
    def succeeded(self) -> int:
        return max(self.total - len(self.failures), 0)

    def merge(self, other: BatchError) -> BatchError:
        """Combine two aggregate errors into a new one spanning both stages."""
        return BatchError(
            stage=f"{self.stage}+{other.stage}",
            total=self.total + other.total,
            failures=self.failures + other.failures,
        )

    def describe(self) -> str:
        lines = [self.message]
        for i, failure in enumerate(self.failures, start=1):
            lines.append(f"  {i}. {failure.describe()}")
        return "\n".join(lines)
