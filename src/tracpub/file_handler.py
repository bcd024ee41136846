"""Encoding-aware reading and writing of document files."""

from __future__ import annotations

from pathlib import Path

from charset_normalizer import from_bytes


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = Path(path).read_bytes()
    if not raw:
        return ("", "utf-8")

    best = from_bytes(raw).best()
    if best is None:
        return (raw.decode("utf-8", errors="replace"), "utf-8")

    encoding = best.encoding
    # ascii is a strict subset of utf-8
    if encoding == "ascii":
        encoding = "utf-8"
    return (str(best), encoding)


def read_text(path: Path) -> str:
    """Return the decoded text of *path*."""
    return read_file_with_encoding(path)[0]


def write_file(path: Path, content: str, encoding: str = "utf-8") -> int:
    """Write content to a file, creating parent directories as needed.

    Returns:
        Number of bytes written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    path.write_bytes(encoded)
    return len(encoded)
