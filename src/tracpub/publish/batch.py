"""Batch executor: run one operation over many records, isolating failures.

Each item is processed by a synchronous ``task`` in a worker thread
(``asyncio.to_thread``) behind an ``asyncio.Semaphore`` sized by
``max_parallel``.  A failing item never stops its siblings: every failure
is collected, in input order, and surfaced as one ``BatchError`` once the
whole pass and the ``after`` hook have run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Sequence, TypeVar

from ..errors import BatchError, IndexStoreError, TracpubError
from .models import DocumentRecord

T = TypeVar("T")
R = TypeVar("R")
logger = logging.getLogger(__name__)


@dataclass
class BatchOutcome(Generic[T, R]):
    """Result of one batch pass.

    Attributes:
        stage: Stage name used in reports and the aggregate error.
        total: Number of items processed.
        results: ``(item, result)`` for every item that succeeded.
        failures: Per-item failures, in input order.
    """

    stage: str
    total: int
    results: list[tuple[T, R]] = field(default_factory=list)
    failures: list[TracpubError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def error(self) -> BatchError | None:
        """Return the aggregate error, or ``None`` when nothing failed."""
        if not self.failures:
            return None
        return BatchError(self.stage, self.total, self.failures)

    def raise_for_failures(self) -> None:
        error = self.error()
        if error is not None:
            raise error


def _as_tracpub_error(exc: BaseException, item: Any) -> TracpubError:
    """Attach record context to *exc* unless it already carries it."""
    record = item if isinstance(item, DocumentRecord) else None
    if isinstance(exc, TracpubError):
        if exc.record is None and record is not None:
            exc.record = record
        return exc
    wrapped = TracpubError(f"{type(exc).__name__}: {exc}", record=record)
    wrapped.__cause__ = exc
    return wrapped


class BatchExecutor:
    """Drive a per-item operation over a collection of items.

    Args:
        max_parallel: Maximum number of items processed at once.
            ``1`` processes items strictly one after another.
    """

    def __init__(self, max_parallel: int = 4) -> None:
        if max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")
        self.max_parallel = max_parallel

    def execute(
        self,
        stage: str,
        items: Sequence[T],
        task: Callable[[T], R],
        after: Callable[[BatchOutcome[T, R]], None] | None = None,
    ) -> BatchOutcome[T, R]:
        """Run *task* for every item and return the outcome without raising.

        Args:
            stage: Stage name for logging and the aggregate error.
            items: Work items, usually ``DocumentRecord`` instances.
            task: Synchronous callable applied to each item.
            after: Hook called with the outcome once every item has been
                processed, even when some failed.  An exception raised by
                the hook is appended to the outcome's failures, except
                ``IndexStoreError`` which is fatal and propagates.

        Returns:
            The ``BatchOutcome`` of the pass.

        Raises:
            IndexStoreError: If the *after* hook could not save the index.
        """
        outcome: BatchOutcome[T, R] = BatchOutcome(stage=stage, total=len(items))
        if items:
            settled = asyncio.run(self._gather(items, task))
            for item, (result, exc) in zip(items, settled):
                if exc is None:
                    outcome.results.append((item, result))
                else:
                    failure = _as_tracpub_error(exc, item)
                    logger.error("%s failed: %s", stage, failure.describe())
                    outcome.failures.append(failure)

        if after is not None:
            try:
                after(outcome)
            except IndexStoreError:
                logger.error(
                    "%s: %d succeeded, %d failed, index not saved",
                    stage,
                    len(outcome.results),
                    len(outcome.failures),
                )
                raise
            except Exception as exc:
                logger.error("%s: after-batch step failed: %s", stage, exc)
                outcome.failures.append(_as_tracpub_error(exc, None))

        logger.info(
            "%s: %d succeeded, %d failed",
            stage,
            len(outcome.results),
            len(outcome.failures),
        )
        return outcome

    def run(
        self,
        stage: str,
        items: Sequence[T],
        task: Callable[[T], R],
        after: Callable[[BatchOutcome[T, R]], None] | None = None,
    ) -> BatchOutcome[T, R]:
        """Like ``execute`` but raise ``BatchError`` when any item failed."""
        outcome = self.execute(stage, items, task, after)
        outcome.raise_for_failures()
        return outcome

    async def _gather(
        self, items: Sequence[T], task: Callable[[T], R]
    ) -> list[tuple[R | None, BaseException | None]]:
        semaphore = asyncio.Semaphore(self.max_parallel)

        async def settle(item: T) -> tuple[R | None, BaseException | None]:
            async with semaphore:
                try:
                    return await asyncio.to_thread(task, item), None
                except Exception as exc:
                    return None, exc

        return list(await asyncio.gather(*(settle(item) for item in items)))
