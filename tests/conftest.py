"""Shared pytest fixtures for tracpub tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable
from unittest.mock import Mock

import pytest
from dotenv import load_dotenv

from tracpub.config import Config
from tracpub.errors import RemoteError, RemoteTimeoutError
from tracpub.publish.models import DocumentRecord
from tracpub.remotes.base import RemoteResponse

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Trac instance",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Trac instance"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeRemote:
    """In-memory remote that records every call.

    Args:
        fail_on: File names whose create/update raises ``RemoteError``.
        timeout_on: File names whose create/update raises
            ``RemoteTimeoutError``.
    """

    name = "fake"

    def __init__(
        self,
        fail_on: set[str] | None = None,
        timeout_on: set[str] | None = None,
    ) -> None:
        self.fail_on = set(fail_on or ())
        self.timeout_on = set(timeout_on or ())
        self.pages: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []
        self.sent: list[DocumentRecord] = []

    def _check(self, record: DocumentRecord) -> None:
        if record.file_name in self.timeout_on:
            raise RemoteTimeoutError(
                "timed out", record, request=f"PUT {record.file_name}"
            )
        if record.file_name in self.fail_on:
            raise RemoteError(
                "remote rejected document",
                record,
                request=f"PUT {record.file_name}",
                status_code=500,
            )

    def create(self, record: DocumentRecord, content: str) -> RemoteResponse:
        self.calls.append(("create", record.source_path))
        self.sent.append(record)
        self._check(record)
        uri = f"https://wiki.test/{Path(record.source_path).stem}"
        self.pages[uri] = content
        return RemoteResponse(
            remote_uri=uri, extra_properties={"page_id": str(len(self.pages))}
        )

    def update(self, record: DocumentRecord, content: str) -> RemoteResponse:
        self.calls.append(("update", record.source_path))
        self.sent.append(record)
        self._check(record)
        self.pages[record.remote_uri] = content
        return RemoteResponse(extra_properties={"revision": str(len(self.calls))})

    def actions(self) -> list[str]:
        return [action for action, _ in self.calls]


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def write_doc(tmp_path: Path) -> Callable[[str, str], Path]:
    """Factory fixture: write a document below ``tmp_path``."""

    def _write(rel_path: str, content: str = "# Title\n\nBody.\n") -> Path:
        path = tmp_path / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def record_for() -> Callable[..., DocumentRecord]:
    """Factory fixture: build a record for a path, with optional overrides."""

    def _make(path: Path | str, **fields) -> DocumentRecord:
        source = Path(path).absolute().as_posix()
        return DocumentRecord.for_source(source).model_copy(update=fields)

    return _make


# ---------------------------------------------------------------------------
# Trac client helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        trac_url="https://trac.example.com/trac",
        username="testuser",
        password="testpass",
        insecure=False,
    )


@pytest.fixture
def mock_xml_response():
    """Factory fixture for creating XML-RPC response mocks."""

    def _create_response(content):
        mock_response = Mock()
        mock_response.status_code = 200
        mock_response.content = (
            content.encode() if isinstance(content, str) else content
        )
        mock_response.raise_for_status = Mock()
        return mock_response

    return _create_response


@pytest.fixture
def make_remote() -> type[FakeRemote]:
    """The ``FakeRemote`` class, for tests that configure failures."""
    return FakeRemote
