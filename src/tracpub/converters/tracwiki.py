"""Markdown to TracWiki rendering using the mistune AST renderer."""

import re
from typing import Any

import mistune

from .links import LinkResolver, resolve_link

# Markdown fence language -> TracWiki processor, only where the names differ.
_PROCESSOR_NAMES: dict[str, str] = {
    "bash": "sh",
    "shell": "sh",
    "zsh": "sh",
    "js": "javascript",
    "ts": "typescript",
    "c++": "cpp",
    "plaintext": "text",
    "plain": "text",
}

_EXTERNAL_PREFIXES = ("http://", "https://", "ftp://", "mailto:", "file://")


def tracwiki_processor(lang: str) -> str:
    """Map a Markdown code fence language to a TracWiki processor name.

    >>> tracwiki_processor("bash")
    'sh'
    >>> tracwiki_processor("python")
    'python'
    """
    return _PROCESSOR_NAMES.get(lang.lower(), lang)


class TracWikiRenderer(mistune.BaseRenderer):
    """Renderer that converts a Markdown AST to TracWiki syntax.

    Args:
        link_resolver: Optional resolver consulted for every link.  Links
            it accepts are emitted as ``[target text]`` with the resolved
            target.
    """

    NAME = "tracwiki"

    def __init__(self, link_resolver: LinkResolver | None = None):
        super().__init__()
        self.link_resolver = link_resolver

    # -- inline ---------------------------------------------------------

    def text(self, text: str) -> str:
        return text

    def emphasis(self, text: str) -> str:
        return f"''{text}''"

    def strong(self, text: str) -> str:
        return f"'''{text}'''"

    def codespan(self, text: str) -> str:
        return f"`{text}`"

    def linebreak(self) -> str:
        return "[[BR]]\n"

    def softbreak(self) -> str:
        return "\n"

    def inline_html(self, html: str) -> str:
        return html

    def link(self, text: str, url: str, title=None) -> str:
        """Render a link.

        Markdown ``[text](url)`` becomes ``[url text]`` for external URLs,
        anchors and resolver-handled references, and ``[wiki:url text]``
        for anything else, which Trac treats as a page name.
        """
        label = f" {text}" if text else ""
        target = resolve_link(self.link_resolver, text, url)
        if target is not None:
            return f"[{target}{label}]"
        if url.startswith(_EXTERNAL_PREFIXES) or url.startswith("#"):
            return f"[{url}{label}]"
        return f"[wiki:{url}{label}]"

    def image(self, text: str, url: str, title=None) -> str:
        return f"[[Image({url})]]"

    # -- block ----------------------------------------------------------

    def blank_line(self) -> str:
        return ""

    def newline(self) -> str:
        return ""

    def heading(self, text: str, level: int, **attrs) -> str:
        marker = "=" * level
        return f"{marker} {text} {marker}\n"

    def paragraph(self, text: str) -> str:
        return f"{text}\n\n"

    def block_text(self, text: str) -> str:
        return text

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a fenced block as ``{{{#!lang ... }}}``."""
        code = code.rstrip("\n")
        lang = info.split()[0] if info and info.strip() else ""
        if lang:
            return f"{{{{{{#!{tracwiki_processor(lang)}\n{code}\n}}}}}}\n\n"
        return f"{{{{{{\n{code}\n}}}}}}\n\n"

    def block_quote(self, text: str) -> str:
        # TracWiki quotes are indented by two spaces.
        lines = text.rstrip("\n").split("\n")
        return "\n".join(f"  {line}" if line else "" for line in lines) + "\n\n"

    def block_html(self, html: str) -> str:
        return html + "\n"

    def block_error(self, text: str) -> str:
        return text

    def thematic_break(self) -> str:
        return "----\n\n"

    # -- tables (mistune "table" plugin) --------------------------------

    def table(self, text: str) -> str:
        return text.rstrip("\n") + "\n\n"

    def table_head(self, text: str) -> str:
        return f"||{text.rstrip('|')}||\n"

    def table_body(self, text: str) -> str:
        return text

    def table_row(self, text: str) -> str:
        return f"||{text.rstrip('|')}||\n"

    def table_cell(
        self, text: str, align: str | None = None, head: bool = False
    ) -> str:
        """Render a cell followed by ``||``.

        Alignment is expressed with whitespace around the text; header
        cells are wrapped in ``=`` markers.
        """
        left = " " if align in ("right", "center") else ""
        right = " " if align in ("left", "center") else ""
        if head and text:
            return f"={left}{text}{right}=||"
        return f"{left}{text}{right}||"

    # -- lists ----------------------------------------------------------

    def render_token(self, token: dict[str, Any], state) -> str:
        """Unpack a token into the text and attrs the render methods take."""
        if token["type"] == "list":
            return self._render_list(token, state)

        func = self._get_method(token["type"])
        attrs = token.get("attrs") or {}
        if "raw" in token:
            text = token["raw"]
        elif "children" in token:
            text = self.render_tokens(token["children"], state)
        else:
            return func(**attrs)
        return func(text, **attrs)

    def _render_list(self, token: dict[str, Any], state) -> str:
        """Render a list with TracWiki indentation.

        Depth 0 items start with one space, each nesting level adds two:
        `` * item``, ``   * nested``, `` 1. first``.
        """
        attrs = token.get("attrs", {})
        depth = attrs.get("depth", 0)
        ordered = attrs.get("ordered", False)
        number = attrs.get("start") or 1
        indent = " " * (depth * 2 + 1)

        out = []
        for item in token.get("children", []):
            inline, nested = [], []
            for child in item.get("children", []):
                (nested if child["type"] == "list" else inline).append(child)
            text = self.render_tokens(inline, state).strip("\n")
            text = re.sub(r"\n{2,}", "\n", text)
            marker = f"{number}." if ordered else "*"
            out.append(f"{indent}{marker} {text}\n")
            if nested:
                out.append(self.render_tokens(nested, state))
            number += 1

        if depth == 0:
            out.append("\n")
        return "".join(out)


def markdown_to_tracwiki(
    markdown_text: str, link_resolver: LinkResolver | None = None
) -> str:
    """Convert Markdown text to TracWiki.

    Args:
        markdown_text: Markdown formatted text.
        link_resolver: Optional resolver for relative document links.

    Returns:
        TracWiki formatted text.
    """
    markdown = mistune.create_markdown(
        renderer=TracWikiRenderer(link_resolver), plugins=["table"]
    )
    result: str = markdown(markdown_text)  # type: ignore[assignment]
    result = re.sub(r"\n{3,}", "\n\n", result)
    return result.rstrip("\n") + "\n"
