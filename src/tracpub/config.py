"""Trac connection settings.

Reads the connection used by the ``trac`` remote from CLI args, environment
variables, .env files, and the ``remote`` section of the YAML config.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    TRAC_URL: Trac instance URL (required)
    TRAC_USERNAME: Trac username (required)
    TRAC_PASSWORD: Trac password (required)
    TRAC_INSECURE: Skip SSL verification (optional, default: false)
    TRAC_TIMEOUT: Per-request timeout in seconds (optional, default: 30)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
MAX_TIMEOUT = 600.0


@dataclass
class Config:
    trac_url: str
    username: str
    password: str
    insecure: bool = False
    timeout: float = DEFAULT_TIMEOUT


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Normalises the URL (surrounding whitespace and trailing slash).

    Raises:
        ValueError: If URL format is invalid, credentials are empty, or the
            timeout is out of range.
    """
    config.trac_url = config.trac_url.strip()

    if not config.trac_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid Trac URL '{config.trac_url}': must start with http:// or https://"
        )
    if not urlparse(config.trac_url).hostname:
        raise ValueError(
            f"Invalid Trac URL '{config.trac_url}': URL must include a hostname"
        )
    config.trac_url = config.trac_url.removesuffix("/")

    if not config.username.strip():
        raise ValueError(
            "Trac username cannot be empty. Set TRAC_USERNAME environment variable."
        )
    if not config.password.strip():
        raise ValueError(
            "Trac password cannot be empty. Set TRAC_PASSWORD environment variable."
        )

    if not (1 <= config.timeout <= MAX_TIMEOUT):
        raise ValueError(
            f"Invalid timeout {config.timeout}: must be between 1 and {MAX_TIMEOUT:g} seconds"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _env_bool(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    url: str | None = None,
    username: str | None = None,
    password: str | None = None,
    insecure: bool = False,
    timeout: float | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load the Trac connection with unified precedence.

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override Trac URL.
        username: Override username.
        password: Override password.
        insecure: Skip SSL verification (CLI flag).
        timeout: Override per-request timeout in seconds.
        yaml_fallbacks: Values from the YAML ``remote`` section, used when
            neither the CLI nor the environment provide a field.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If URL, username or password is missing after checking
            all sources, or a value is invalid.
    """
    fb = yaml_fallbacks or {}

    trac_url = url or os.getenv("TRAC_URL") or fb.get("url")
    if not trac_url:
        raise ValueError(
            "Trac URL not found. Set TRAC_URL environment variable, "
            "pass --url, or add 'url' to the remote section of the config file."
        )

    trac_username = username or os.getenv("TRAC_USERNAME") or fb.get("username")
    if not trac_username:
        raise ValueError(
            "Trac username not found. Set TRAC_USERNAME environment variable, "
            "pass --username, or add 'username' to the remote section of the config file."
        )

    trac_password = password or os.getenv("TRAC_PASSWORD") or fb.get("password")
    if not trac_password:
        raise ValueError(
            "Trac password not found. Set TRAC_PASSWORD environment variable, "
            "pass --password, or add 'password' to the remote section of the config file."
        )

    if insecure:
        final_insecure = True
    else:
        env_insecure = _env_bool("TRAC_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if timeout is not None:
        final_timeout = float(timeout)
    else:
        raw = os.getenv("TRAC_TIMEOUT")
        if raw is not None:
            try:
                final_timeout = float(raw)
            except ValueError:
                raise ValueError(
                    f"Invalid TRAC_TIMEOUT '{raw}': must be a number of seconds"
                ) from None
        else:
            final_timeout = float(fb.get("timeout", DEFAULT_TIMEOUT))

    config = Config(
        trac_url=trac_url,
        username=trac_username.strip(),
        password=trac_password.strip(),
        insecure=final_insecure,
        timeout=final_timeout,
    )
    validate_config(config)
    return config
