"""Remote publishing targets."""

from .base import REMOTE_TYPES, RemoteClient, RemoteResponse, create_remote
from .noop import NoopRemote

__all__ = [
    "NoopRemote",
    "REMOTE_TYPES",
    "RemoteClient",
    "RemoteResponse",
    "create_remote",
]
