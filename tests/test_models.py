"""Tests for the publishing data models."""

import pytest
from pydantic import ValidationError

from tracpub.publish.models import DocumentRecord, RecordResult, StageReport


class TestDocumentRecord:
    """Tests for DocumentRecord."""

    def test_for_source_defaults(self):
        record = DocumentRecord.for_source("/docs/install/setup.md", tags=["a"])
        assert record.title == "setup"
        assert record.file_name == "setup.md"
        assert record.tags == ["a"]
        assert record.remote_uri is None
        assert record.pending_links == []
        assert record.orphaned is False

    def test_tags_deduplicated_in_order(self):
        record = DocumentRecord(source_path="/a.md", title="a", tags=["x", "y", "x"])
        assert record.tags == ["x", "y"]

    def test_frozen(self):
        record = DocumentRecord.for_source("/a.md")
        with pytest.raises(ValidationError):
            record.title = "changed"

    def test_synced_at_requires_uri(self):
        with pytest.raises(ValidationError, match="without remote_uri"):
            DocumentRecord(
                source_path="/a.md",
                title="a",
                remote_last_synced_at="2026-01-01T00:00:00+00:00",
            )

    def test_with_extra_properties_merges(self):
        record = DocumentRecord(
            source_path="/a.md", title="a", extra_properties={"k": "old", "keep": "1"}
        )
        updated = record.with_extra_properties({"k": "new"})
        assert updated.extra_properties == {"k": "new", "keep": "1"}
        assert record.extra_properties == {"k": "old", "keep": "1"}


class TestStageReport:
    """Tests for StageReport grouping."""

    def test_groups_and_summary(self):
        report = StageReport(
            stage="convert",
            started_at="t",
            results=[
                RecordResult(source_path="/a.md", action="converted", success=True),
                RecordResult(source_path="/b.md", action="skipped", success=True),
                RecordResult(
                    source_path="/c.md", action="failed", success=False, error="x"
                ),
            ],
        )
        assert [r.source_path for r in report.converted] == ["/a.md"]
        assert [r.source_path for r in report.skipped] == ["/b.md"]
        assert [r.source_path for r in report.errors] == ["/c.md"]
        assert report.summary() == "convert: 2 succeeded, 1 failed"
