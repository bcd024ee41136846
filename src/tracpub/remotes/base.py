"""Remote client protocol and factory.

A remote receives the converted content of one document at a time and
answers with where it now lives.  Implementations keep any identifiers
they need between runs in the record's ``extra_properties`` bag, which the
rest of the pipeline treats as opaque.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, Field

from ..publish.models import DocumentRecord

if TYPE_CHECKING:
    from ..config_schema import RemoteSettings


class RemoteResponse(BaseModel):
    """What a remote reports back after a successful create/update.

    Attributes:
        remote_uri: Location of the document on the remote.  Required for
            ``create``; ``None`` from ``update`` keeps the stored URI.
        extra_properties: Remote-specific identifiers merged over the
            record's own.
    """

    remote_uri: str | None = None
    extra_properties: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}


class RemoteClient(Protocol):
    """Interface for publishing converted documents."""

    name: str

    def create(self, record: DocumentRecord, content: str) -> RemoteResponse:
        """Create the document remotely; *record* has no ``remote_uri`` yet."""
        ...

    def update(self, record: DocumentRecord, content: str) -> RemoteResponse:
        """Replace the remote document identified by *record*."""
        ...


REMOTE_TYPES = ("trac", "noop")


def create_remote(
    settings: RemoteSettings,
    base_dir: Path,
    url: str | None = None,
    username: str | None = None,
    password: str | None = None,
    insecure: bool = False,
    timeout: float | None = None,
) -> RemoteClient:
    """Factory: build the remote selected by ``settings.type``.

    Connection overrides (normally from the command line) take precedence
    over the environment and the settings.

    Raises:
        ValueError: If the type is unknown or the connection settings are
            missing or invalid.
    """
    if settings.type == "noop":
        from .noop import NoopRemote

        return NoopRemote()

    if settings.type == "trac":
        from ..config import load_config
        from ..core.client import TracClient
        from .trac import TracRemote

        config = load_config(
            url=url,
            username=username,
            password=password,
            insecure=insecure,
            timeout=timeout,
            yaml_fallbacks=settings.model_dump(),
        )
        return TracRemote(
            TracClient(config),
            base_dir=base_dir,
            page_prefix=settings.page_prefix,
        )

    raise ValueError(
        f"Unknown remote type {settings.type!r}; choose one of: {', '.join(REMOTE_TYPES)}"
    )
