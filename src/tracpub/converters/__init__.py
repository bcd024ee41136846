"""Markdown renderers and link resolution for published documents."""

from .links import IndexLinkResolver, LinkResolver, resolve_link
from .renderers import (
    DEFAULT_FOOTER,
    RENDERER_NAMES,
    Renderer,
    create_renderer,
    load_footer,
)
from .tracwiki import markdown_to_tracwiki

__all__ = [
    "DEFAULT_FOOTER",
    "IndexLinkResolver",
    "LinkResolver",
    "RENDERER_NAMES",
    "Renderer",
    "create_renderer",
    "load_footer",
    "markdown_to_tracwiki",
    "resolve_link",
]
