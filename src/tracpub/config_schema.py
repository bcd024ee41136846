"""Unified configuration schema for tracpub.

Defines frozen Pydantic models for the sections of the YAML config file:

- ``remote``  -- where documents are published (``RemoteSettings``).
- ``publish`` -- what is published and how (``PublishConfig``).
- ``logging`` -- log level and file (``LoggingConfig``).

Usage:
    from tracpub.config_schema import apply_overrides, build_config

    raw = load_hierarchical_config()
    unified = apply_overrides(build_config(raw), {"renderer": "html"})
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteSettings(BaseModel):
    """Remote target settings.

    Connection fields are optional: env vars and CLI args can supply them
    at runtime instead.
    """

    type: Literal["trac", "noop"] = Field(
        default="trac", description="Remote implementation"
    )
    url: str | None = Field(default=None, description="Trac server URL")
    username: str | None = Field(default=None, description="Trac username")
    password: str | None = Field(default=None, description="Trac password")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    timeout: float = Field(
        default=30.0,
        ge=1,
        le=600,
        description="Per-request timeout in seconds (1-600)",
    )
    page_prefix: str = Field(
        default="", description="Parent page for every published page"
    )
    default_extra_properties: dict[str, str] = Field(
        default_factory=dict,
        description="Properties sent with every document",
    )

    model_config = {"frozen": True}


class PublishConfig(BaseModel):
    """Immutable run configuration handed to the publishing engine.

    Relative paths are resolved against the project base directory (the
    current working directory for the CLI).
    """

    index_path: str = Field(
        default=".tracpub/index.json", description="Index file location"
    )
    search_paths: list[str] = Field(
        default_factory=lambda: ["."], description="Directories to scan"
    )
    include: list[str] = Field(
        default_factory=lambda: ["*.md", "*.markdown"],
        description="Globs a document must match",
    )
    exclude: list[str] = Field(
        default_factory=list, description="Globs that drop a document"
    )
    output_path: str | None = Field(
        default=None,
        description="Directory for converted files (default: beside sources)",
    )
    renderer: Literal["tracwiki", "html", "markdown"] = Field(
        default="tracwiki", description="Output format"
    )
    default_tags: list[str] = Field(
        default_factory=list, description="Tags sent with every document"
    )
    max_parallel: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Documents processed concurrently (1-32)",
    )
    footer_enabled: bool = Field(
        default=True, description="Append the generated-page disclaimer"
    )
    footer_path: str | None = Field(
        default=None, description="File replacing the built-in disclaimer"
    )

    model_config = {"frozen": True}

    @field_validator("search_paths")
    @classmethod
    def _require_search_path(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one search path is required")
        return value


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="WARNING", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(default="text")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    always valid.
    """

    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    publish: PublishConfig = Field(default_factory=PublishConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def build_config(raw_data: dict | None) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults.

    Raises:
        pydantic.ValidationError: If a value is invalid.
    """
    if not raw_data:
        return UnifiedConfig()
    return UnifiedConfig(**raw_data)


_REMOTE_KEYS = {"type", "timeout", "page_prefix"}


def apply_overrides(
    unified: UnifiedConfig, overrides: dict[str, Any] | None = None
) -> UnifiedConfig:
    """Return a copy of *unified* with non-``None`` CLI values applied.

    Keys ``type``, ``timeout`` and ``page_prefix`` go to the ``remote``
    section; every other key to ``publish``.  The result is re-validated.
    """
    remote_updates: dict[str, Any] = {}
    publish_updates: dict[str, Any] = {}
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key in _REMOTE_KEYS:
            remote_updates[key] = value
        else:
            publish_updates[key] = value

    if not remote_updates and not publish_updates:
        return unified

    logger.debug("Applying overrides: %s %s", remote_updates, publish_updates)
    return UnifiedConfig(
        remote=RemoteSettings(**{**unified.remote.model_dump(), **remote_updates}),
        publish=PublishConfig(**{**unified.publish.model_dump(), **publish_updates}),
        logging=unified.logging,
    )
