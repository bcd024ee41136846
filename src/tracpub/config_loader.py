"""
Hierarchical configuration loader for tracpub.

Provides convention-based config file discovery, YAML !include support,
env var interpolation, and hierarchical merge with "project wins" semantics.

Usage:
    from tracpub.config_loader import load_hierarchical_config

    config = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TRACPUB_CONFIG"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` becomes the value of VAR, or an empty string.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) if match.group(2) is not None else ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. YAML !include support
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader subclass with ``!include`` support.

    The global ``yaml.SafeLoader`` is never modified.  Each load carries an
    include stack used to detect circular includes.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Handle ``!include path/to/file.yml`` directives."""
    target: str = loader.construct_scalar(node)
    if os.path.isabs(target):
        include_path = Path(target)
    else:
        # Relative to the file containing the directive.
        include_path = Path(loader.name).resolve().parent / target
    include_path = include_path.resolve()

    stack: list[Path] = getattr(loader, "_include_stack", [])
    if include_path in stack:
        chain = " -> ".join(str(p) for p in stack + [include_path])
        raise ValueError(f"Circular include detected: {chain}")

    if not include_path.exists():
        raise FileNotFoundError(
            f"Include file not found: {include_path} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return _load_yaml_with_includes(include_path, _include_stack=stack + [include_path])


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path, *, _include_stack: list[Path] | None = None
) -> Any:
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``TRACPUB_CONFIG`` env var (explicit single path)
        2. ``.tracpub/config.yml`` in CWD (project-level)
        3. ``.tracpub/config.yaml`` in CWD (alternate extension)
        4. ``~/.config/tracpub/config.yml`` (XDG global)

    Only paths that exist on disk are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    cwd = Path.cwd()
    candidates.append(cwd / ".tracpub" / "config.yml")
    candidates.append(cwd / ".tracpub" / "config.yaml")
    candidates.append(Path.home() / ".config" / "tracpub" / "config.yml")

    return [p for p in candidates if p.exists()]


# ---------------------------------------------------------------------------
# 3a. Config bootstrapping
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# tracpub configuration
#
# Trac connection settings can also be set via environment variables:
#   TRAC_URL, TRAC_USERNAME, TRAC_PASSWORD, TRAC_INSECURE, TRAC_TIMEOUT
#
# remote:
#   type: trac            # or "noop" for a dry run
#   url: https://trac.example.com/project
#   username: ${TRAC_USERNAME}
#   password: ${TRAC_PASSWORD}
#   timeout: 30
#   page_prefix: Docs
#   default_extra_properties: {}
#
# publish:
#   index_path: .tracpub/index.json
#   search_paths: [docs]
#   include: ["*.md", "*.markdown"]
#   exclude: ["drafts/*"]
#   output_path: build/wiki
#   renderer: tracwiki    # tracwiki | html | markdown
#   default_tags: []
#   max_parallel: 4
#   footer_enabled: true
#   footer_path: null
#
# logging:
#   level: WARNING
#   file: null
#   format: text
"""


def resolve_config_path() -> Path:
    """Return the highest-precedence existing config file, or the default
    project-level path ``CWD / .tracpub / config.yml``.
    """
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / ".tracpub" / "config.yml"


def ensure_config(target: Path | None = None) -> tuple[Path, bool]:
    """Ensure a config file exists, writing a commented starter file if not.

    Args:
        target: Explicit path to create.  If ``None``, uses
            ``resolve_config_path()``.

    Returns:
        ``(path, created)``.
    """
    if target is None:
        existing = discover_config_files()
        if existing:
            logger.debug("Config file already exists: %s", existing[0])
            return existing[0], False
        target = resolve_config_path()
    elif target.exists():
        return target, False

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", target)
    return target, True


# ---------------------------------------------------------------------------
# 4. Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config(paths: list[Path] | None = None) -> dict[str, Any]:
    """Load and merge config files.

    Files are loaded from lowest precedence to highest; each file's
    top-level keys **replace** (not deep-merge) those from earlier files.
    Env var interpolation is applied after merging.

    Args:
        paths: Files in precedence order (highest first).  Defaults to
            ``discover_config_files()``.

    Returns:
        The merged dict; empty when no config files exist (zero-config).
    """
    if paths is None:
        paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        data = _load_yaml_with_includes(path)
        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
