"""Discovery of managed source documents.

Walks every configured search root, keeps files matching at least one
include glob and no exclude glob, and returns their absolute paths.

Matching rules:

1. **Symlinks** -- symlinked files and directories are never followed.
2. **Include/exclude** -- a glob matches when ``fnmatch`` accepts the file
   name, the path relative to the search root, or the absolute path.
3. **Errors** -- missing roots, unreadable directories and blank patterns
   are collected as ``DiscoveryError`` entries; the rest of the walk goes on.
4. **Ordering** -- directories and files are visited in sorted order and
   duplicates from overlapping roots are dropped, so the same tree always
   yields the same list.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import DiscoveryError

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE: tuple[str, ...] = ("*.md", "*.markdown")


@dataclass
class DiscoveryResult:
    """Files found by ``discover_documents`` plus any input errors."""

    paths: list[str] = field(default_factory=list)
    errors: list[DiscoveryError] = field(default_factory=list)


def _clean_patterns(
    patterns: list[str] | tuple[str, ...], kind: str, errors: list[DiscoveryError]
) -> list[str]:
    cleaned = []
    for pattern in patterns:
        if not pattern or not pattern.strip():
            errors.append(
                DiscoveryError(f"Ignoring blank {kind} pattern {pattern!r}")
            )
            continue
        cleaned.append(pattern.strip())
    return cleaned


def _matches(patterns: list[str], name: str, rel: str, absolute: str) -> bool:
    return any(
        fnmatch.fnmatch(name, p)
        or fnmatch.fnmatch(rel, p)
        or fnmatch.fnmatch(absolute, p)
        for p in patterns
    )


def discover_documents(
    roots: list[Path],
    include: list[str] | tuple[str, ...] | None = None,
    exclude: list[str] | tuple[str, ...] | None = None,
) -> DiscoveryResult:
    """Find every source document under *roots*.

    Args:
        roots: Directories to search recursively.
        include: Globs a file must match; defaults to ``DEFAULT_INCLUDE``.
        exclude: Globs that drop a file (or a whole directory) when matched.

    Returns:
        A ``DiscoveryResult`` with absolute POSIX paths and collected errors.
    """
    result = DiscoveryResult()
    includes = _clean_patterns(
        DEFAULT_INCLUDE if include is None else include, "include", result.errors
    )
    excludes = _clean_patterns(exclude or (), "exclude", result.errors)
    seen: set[str] = set()

    for root in roots:
        # Collapse ".." lexically; symlinks below the root are still skipped.
        root = Path(os.path.normpath(Path(root).absolute()))
        if not root.exists():
            result.errors.append(
                DiscoveryError(f"Search path does not exist: {root}", path=str(root))
            )
            continue
        if not root.is_dir():
            result.errors.append(
                DiscoveryError(
                    f"Search path is not a directory: {root}", path=str(root)
                )
            )
            continue

        def on_error(exc: OSError) -> None:
            result.errors.append(
                DiscoveryError(
                    f"Cannot read directory {exc.filename}: {exc.strerror}",
                    path=exc.filename,
                )
            )

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            current = Path(dirpath)
            kept_dirs = []
            for name in sorted(dirnames):
                sub = current / name
                rel = sub.relative_to(root).as_posix()
                if sub.is_symlink():
                    logger.debug("Skipping symlinked directory %s", sub)
                    continue
                if _matches(excludes, name, rel, sub.as_posix()):
                    logger.debug("Excluding directory %s", sub)
                    continue
                kept_dirs.append(name)
            dirnames[:] = kept_dirs

            for name in sorted(filenames):
                path = current / name
                rel = path.relative_to(root).as_posix()
                absolute = path.as_posix()
                if path.is_symlink() or not path.is_file():
                    continue
                if not _matches(includes, name, rel, absolute):
                    continue
                if _matches(excludes, name, rel, absolute):
                    continue
                if absolute in seen:
                    continue
                seen.add(absolute)
                result.paths.append(absolute)

    for error in result.errors:
        logger.warning("%s", error)
    logger.info("Discovered %d documents", len(result.paths))
    return result
