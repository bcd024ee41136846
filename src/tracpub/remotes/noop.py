"""Remote that publishes nowhere; used for dry runs and tests."""

import logging
from pathlib import Path

from ..publish.models import DocumentRecord
from .base import RemoteResponse

logger = logging.getLogger(__name__)


class NoopRemote:
    """Accept every document without any network I/O.

    ``create`` answers with a ``file://`` URI of the source document so
    records move through the same states as with a real remote.
    """

    name = "noop"

    def create(self, record: DocumentRecord, content: str) -> RemoteResponse:
        logger.debug("Noop - creating %s on remote", record.source_path)
        return RemoteResponse(remote_uri=Path(record.source_path).as_uri())

    def update(self, record: DocumentRecord, content: str) -> RemoteResponse:
        logger.debug("Noop - updating %s on remote", record.source_path)
        return RemoteResponse()
