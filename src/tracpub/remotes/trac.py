"""Publish converted documents as Trac wiki pages.

Page naming:

1. ``extra_properties["trac_page"]`` when present (set by an earlier create,
   or by hand in the index to pin a page name).
2. Otherwise ``page_prefix`` + the source path relative to the project base,
   without extension, e.g. ``docs/install/setup.md`` -> ``Docs/docs/install/setup``
   with ``page_prefix="Docs"``.

After each write the page name and new page version are stored in
``trac_page`` / ``trac_version``.  Updates send the stored version so the
server rejects the write if someone edited the page in the meantime.
"""

from __future__ import annotations

import logging
import re
import xmlrpc.client
from pathlib import Path, PurePosixPath
from xml.etree import ElementTree

import requests

from ..core.client import TracClient
from ..errors import RemoteError, RemoteTimeoutError
from ..publish.models import DocumentRecord
from .base import RemoteResponse

logger = logging.getLogger(__name__)

PAGE_KEY = "trac_page"
VERSION_KEY = "trac_version"

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9_.\-/]+")


class TracRemote:
    """Remote client backed by ``TracClient.put_wiki_page``.

    Args:
        client: Configured Trac XML-RPC client.
        base_dir: Project base directory used to derive page names.
        page_prefix: Optional parent page for every published page.
    """

    name = "trac"

    def __init__(
        self, client: TracClient, base_dir: Path, page_prefix: str = ""
    ) -> None:
        self.client = client
        self.base_dir = Path(base_dir)
        self.page_prefix = page_prefix.strip("/")

    # ------------------------------------------------------------------
    # Page naming
    # ------------------------------------------------------------------

    def page_name(self, record: DocumentRecord) -> str:
        """Return the wiki page name for *record*."""
        pinned = record.extra_properties.get(PAGE_KEY)
        if pinned:
            return pinned

        source = Path(record.source_path)
        try:
            rel = PurePosixPath(source.relative_to(self.base_dir).as_posix())
        except ValueError:
            rel = PurePosixPath(source.name)
        raw = f"{self.page_prefix}/{rel.with_suffix('').as_posix()}"

        raw = _UNSAFE_CHARS_RE.sub("_", raw)
        while "//" in raw:
            raw = raw.replace("//", "/")
        return raw.strip("/")

    @staticmethod
    def change_comment(record: DocumentRecord) -> str:
        """Build the change comment; Trac pages have no tags, so they go here."""
        comment = f"Published from {record.file_name} by tracpub"
        if record.tags:
            comment += f" [tags: {', '.join(record.tags)}]"
        return comment

    # ------------------------------------------------------------------
    # RemoteClient
    # ------------------------------------------------------------------

    def create(self, record: DocumentRecord, content: str) -> RemoteResponse:
        return self._put(record, content, version=None)

    def update(self, record: DocumentRecord, content: str) -> RemoteResponse:
        raw_version = record.extra_properties.get(VERSION_KEY)
        try:
            version = int(raw_version) if raw_version else None
        except ValueError:
            logger.warning(
                "%s: ignoring non-numeric %s %r",
                record.source_path,
                VERSION_KEY,
                raw_version,
            )
            version = None
        return self._put(record, content, version=version)

    def _put(
        self, record: DocumentRecord, content: str, version: int | None
    ) -> RemoteResponse:
        page = self.page_name(record)
        request = f"wiki.putPage {page} at {self.client.rpc_url}"
        try:
            result = self.client.put_wiki_page(
                page, content, self.change_comment(record), version=version
            )
        except requests.Timeout as exc:
            raise RemoteTimeoutError(
                f"Timed out after {self.client.config.timeout:g}s publishing {page}",
                record,
                request=request,
            ) from exc
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise RemoteError(
                f"HTTP error publishing {page}",
                record,
                request=request,
                status_code=status,
            ) from exc
        except requests.RequestException as exc:
            raise RemoteError(
                f"Connection error publishing {page}", record, request=request
            ) from exc
        except xmlrpc.client.Fault as exc:
            raise RemoteError(
                f"Trac fault {exc.faultCode}: {exc.faultString}",
                record,
                request=request,
            ) from exc
        except ElementTree.ParseError as exc:
            raise RemoteError(
                f"Malformed response publishing {page}", record, request=request
            ) from exc
        except ValueError as exc:
            raise RemoteError(str(exc), record, request=request) from exc

        logger.info("Published %s -> %s", record.source_path, result["url"])
        extra = {PAGE_KEY: page}
        if result.get("version") is not None:
            extra[VERSION_KEY] = str(result["version"])
        return RemoteResponse(remote_uri=result["url"], extra_properties=extra)
