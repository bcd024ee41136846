"""Trac XML-RPC client."""

from .client import TracClient

__all__ = ["TracClient"]
