"""
Input validation for wiki page names and content.

Checked before making XML-RPC calls so that obviously bad requests fail
locally with a clear message.
"""

import re

MAX_CONTENT_BYTES = 1_000_000

_PAGE_SEGMENT_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")


def format_validation_error(field_name: str, reason: str) -> str:
    return f"{field_name} {reason}"


def validate_page_name(page_name: str) -> tuple[bool, str]:
    """
    Validate a wiki page name.

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot contain '..' (path traversal protection)
        - Cannot start or end with '/' or have empty path segments
        - Each segment starts with a letter or digit and holds no spaces
    """
    if not page_name or not page_name.strip():
        return (False, format_validation_error("Page name", "cannot be empty"))

    if ".." in page_name:
        return (False, format_validation_error("Page name", "cannot contain '..'"))

    if page_name.startswith("/") or page_name.endswith("/") or "//" in page_name:
        return (
            False,
            format_validation_error("Page name", "cannot have empty path segments"),
        )

    for segment in page_name.split("/"):
        if not _PAGE_SEGMENT_RE.match(segment):
            return (
                False,
                format_validation_error(
                    "Page name", f"has an invalid segment '{segment}'"
                ),
            )

    return (True, "")


def validate_content(
    content: str, max_size: int = MAX_CONTENT_BYTES
) -> tuple[bool, str]:
    """
    Validate wiki page content.

    Returns:
        Tuple of (is_valid, error_message).

    Validation rules:
        - Cannot be empty
        - Cannot exceed max_size bytes
    """
    if not content:
        return (False, format_validation_error("Content", "cannot be empty"))

    if len(content.encode("utf-8")) > max_size:
        return (
            False,
            format_validation_error(
                "Content", f"exceeds maximum size of {max_size} bytes"
            ),
        )

    return (True, "")
