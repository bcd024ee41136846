"""Renderers that turn a Markdown source document into the published format.

One renderer is selected at start-up with ``create_renderer(name)``:

- ``tracwiki`` -- TracWiki markup (``.wiki``), the native Trac format.
- ``html``     -- HTML (``.html``) for the ``[[html]]`` processor or other
  HTML-accepting remotes.
- ``markdown`` -- pass-through copy (``.md``) for remotes that render
  Markdown themselves.  Only relative document links are rewritten.

Each renderer reads the source, appends the optional disclaimer footer,
renders, and writes the converted file.  Any failure is raised as a
``ConversionError`` carrying the record.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Protocol

import mistune

from ..errors import ConversionError, TracpubError
from ..file_handler import read_text, write_file
from ..publish.models import DocumentRecord
from .links import LinkResolver, resolve_link
from .tracwiki import markdown_to_tracwiki

logger = logging.getLogger(__name__)

DEFAULT_FOOTER = (
    "----\n\n"
    "_This page is generated from `{source}`. "
    "Edit the source document instead of this page; "
    "changes made here are overwritten on the next publish._\n"
)

# Inline Markdown links, not images: [text](target "optional title")
_INLINE_LINK_RE = re.compile(
    r'(?<!!)\[(?P<text>[^\]]*)\]\((?P<target>[^)\s]+)(?P<title>\s+"[^"]*")?\)'
)


class Renderer(Protocol):
    """Converts one source document into its published form."""

    name: str
    extension: str

    def convert(
        self,
        record: DocumentRecord,
        source_path: Path,
        converted_path: Path,
        link_resolver: LinkResolver | None = None,
    ) -> str:
        """Render *source_path* into *converted_path* and return the output."""
        ...


def load_footer(enabled: bool = True, footer_path: Path | None = None) -> str | None:
    """Return the footer template, or ``None`` when footers are disabled.

    Raises:
        ValueError: If *footer_path* cannot be read.
    """
    if not enabled:
        return None
    if footer_path is None:
        return DEFAULT_FOOTER
    try:
        return read_text(Path(footer_path))
    except OSError as exc:
        raise ValueError(f"Cannot read footer file {footer_path}: {exc}") from exc


class MarkdownRenderer:
    """Shared read, footer and write handling for Markdown sources."""

    name = ""
    extension = ""

    def __init__(self, footer: str | None = DEFAULT_FOOTER) -> None:
        self.footer = footer

    def render(self, text: str, link_resolver: LinkResolver | None = None) -> str:
        raise NotImplementedError

    def with_footer(self, text: str, record: DocumentRecord) -> str:
        if not self.footer:
            return text
        footer = self.footer.replace("{source}", record.file_name)
        return text.rstrip("\n") + "\n\n" + footer

    def convert(
        self,
        record: DocumentRecord,
        source_path: Path,
        converted_path: Path,
        link_resolver: LinkResolver | None = None,
    ) -> str:
        try:
            text = read_text(source_path)
        except OSError as exc:
            raise ConversionError(
                f"Cannot read source {source_path}", record
            ) from exc

        try:
            output = self.render(self.with_footer(text, record), link_resolver)
        except TracpubError as exc:
            if exc.record is None:
                exc.record = record
            raise
        except Exception as exc:
            raise ConversionError(
                f"{self.name} rendering failed for {source_path}", record
            ) from exc

        try:
            write_file(converted_path, output)
        except OSError as exc:
            raise ConversionError(
                f"Cannot write converted file {converted_path}", record
            ) from exc

        logger.debug("Rendered %s -> %s", source_path, converted_path)
        return output


class TracWikiRenderer(MarkdownRenderer):
    name = "tracwiki"
    extension = ".wiki"

    def render(self, text: str, link_resolver: LinkResolver | None = None) -> str:
        return markdown_to_tracwiki(text, link_resolver)


class _ResolvingHTMLRenderer(mistune.HTMLRenderer):
    def __init__(self, link_resolver: LinkResolver | None = None) -> None:
        super().__init__(escape=False)
        self.link_resolver = link_resolver

    def link(self, text: str, url: str, title=None) -> str:
        target = resolve_link(self.link_resolver, text, url)
        return super().link(text, url if target is None else target, title)


class HtmlRenderer(MarkdownRenderer):
    name = "html"
    extension = ".html"

    def render(self, text: str, link_resolver: LinkResolver | None = None) -> str:
        markdown = mistune.create_markdown(
            renderer=_ResolvingHTMLRenderer(link_resolver), plugins=["table"]
        )
        return markdown(text)  # type: ignore[return-value]


class PassThroughRenderer(MarkdownRenderer):
    """Copy Markdown unchanged apart from relative document links."""

    name = "markdown"
    extension = ".md"

    def render(self, text: str, link_resolver: LinkResolver | None = None) -> str:
        if link_resolver is None:
            return text

        def rewrite(match: re.Match) -> str:
            target = resolve_link(link_resolver, match["text"], match["target"])
            if target is None:
                return match.group(0)
            return f"[{match['text']}]({target}{match['title'] or ''})"

        return _INLINE_LINK_RE.sub(rewrite, text)


_RENDERERS: dict[str, type[MarkdownRenderer]] = {
    TracWikiRenderer.name: TracWikiRenderer,
    HtmlRenderer.name: HtmlRenderer,
    PassThroughRenderer.name: PassThroughRenderer,
}

RENDERER_NAMES = tuple(_RENDERERS)


def create_renderer(
    name: str = "tracwiki",
    footer_enabled: bool = True,
    footer_path: Path | None = None,
) -> MarkdownRenderer:
    """Factory: return the renderer registered under *name*.

    Raises:
        ValueError: If *name* is unknown or the footer file is unreadable.
    """
    try:
        cls = _RENDERERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown renderer {name!r}; choose one of: {', '.join(RENDERER_NAMES)}"
        ) from None
    return cls(footer=load_footer(footer_enabled, footer_path))
