"""Tests for the conversion stage.

Covers:
- Converted path computation (next to source, mirrored below an output root)
- Change detection: source edits, missing or edited converted files
- Returned records carry fresh checksums and leave the input untouched
- Links to unpublished documents are deferred, then trigger re-rendering
"""

from __future__ import annotations

from pathlib import Path

import pytest

from tracpub.converters import create_renderer
from tracpub.errors import ConversionError
from tracpub.publish.conversion import ConversionStage, converted_path_for
from tracpub.publish.index_store import content_hash


@pytest.fixture
def stage(tmp_path: Path) -> ConversionStage:
    return ConversionStage(
        create_renderer("tracwiki", footer_enabled=False),
        tmp_path,
        tmp_path / "out",
    )


def _index(*records):
    return {r.source_path: r for r in records}


class TestConvertedPath:
    """Tests for converted_path_for()."""

    def test_next_to_source(self, tmp_path, record_for):
        record = record_for(tmp_path / "docs" / "a.md")
        assert converted_path_for(record, ".wiki", tmp_path) == (
            tmp_path / "docs" / "a.wiki"
        )

    def test_mirrored_below_output_root(self, tmp_path, record_for):
        record = record_for(tmp_path / "docs" / "a.md")
        out = tmp_path / "build"
        assert converted_path_for(record, ".wiki", tmp_path, out) == (
            out / "docs" / "a.wiki"
        )

    def test_source_outside_base_lands_at_top(self, tmp_path, record_for):
        record = record_for(tmp_path / "other" / "a.md")
        out = tmp_path / "build"
        assert converted_path_for(record, ".wiki", tmp_path / "proj", out) == (
            out / "a.wiki"
        )

    def test_refuses_to_overwrite_source(self, tmp_path, record_for):
        record = record_for(tmp_path / "a.md")
        with pytest.raises(ConversionError, match="overwrite its source"):
            converted_path_for(record, ".md", tmp_path)


class TestChangeDetection:
    """Tests for ConversionStage.reasons_to_convert()."""

    def test_new_record_needs_conversion(self, stage, write_doc, record_for):
        record = record_for(write_doc("a.md"))
        reasons = stage.reasons_to_convert(record, _index(record))
        assert "source changed" in reasons
        assert "converted file missing" in reasons

    def test_converted_record_is_up_to_date(self, stage, write_doc, record_for):
        record = record_for(write_doc("a.md"))
        converted = stage.convert(record, _index(record))
        assert stage.reasons_to_convert(converted, _index(converted)) == []
        assert not stage.needs_conversion(converted, _index(converted))

    def test_source_edit_detected(self, stage, write_doc, record_for):
        path = write_doc("a.md", "one\n")
        record = stage.convert(record_for(path), {})
        path.write_text("two\n", encoding="utf-8")
        assert stage.reasons_to_convert(record, _index(record)) == ["source changed"]

    def test_whitespace_only_edit_ignored(self, stage, write_doc, record_for):
        path = write_doc("a.md", "one\n")
        record = stage.convert(record_for(path), {})
        path.write_text("one   \r\n\r\n", encoding="utf-8")
        assert stage.reasons_to_convert(record, _index(record)) == []

    def test_deleted_output_detected(self, stage, write_doc, record_for):
        record = stage.convert(record_for(write_doc("a.md")), {})
        stage.converted_path(record).unlink()
        assert stage.reasons_to_convert(record, {}) == ["converted file missing"]

    def test_hand_edited_output_detected(self, stage, write_doc, record_for):
        record = stage.convert(record_for(write_doc("a.md")), {})
        stage.converted_path(record).write_text("tampered\n", encoding="utf-8")
        assert stage.reasons_to_convert(record, {}) == ["converted file modified"]

    def test_unreadable_source_raises(self, stage, tmp_path, record_for):
        record = record_for(tmp_path / "missing.md")
        with pytest.raises(ConversionError, match="Cannot read source"):
            stage.reasons_to_convert(record, {})


class TestConvert:
    """Tests for ConversionStage.convert() and convert_if_needed()."""

    def test_returns_updated_copy(self, stage, write_doc, record_for):
        path = write_doc("docs/a.md", "# A\n")
        record = record_for(path)

        updated = stage.convert(record, _index(record))

        output = (stage.output_root / "docs" / "a.wiki").read_text(encoding="utf-8")
        assert output == "= A =\n"
        assert updated.converted_checksum == content_hash(output)
        assert updated.source_checksum == content_hash("# A\n")
        assert updated.source_modified_at == path.stat().st_mtime
        assert record.converted_checksum is None

    def test_convert_if_needed_skips_up_to_date(self, stage, write_doc, record_for):
        record, converted = stage.convert_if_needed(record_for(write_doc("a.md")), {})
        assert converted is True
        again, converted = stage.convert_if_needed(record, {})
        assert converted is False
        assert again is record

    def test_render_failure_keeps_prior_record(self, tmp_path, write_doc, record_for):
        class Exploding:
            name = "exploding"
            extension = ".wiki"

            def convert(self, record, source_path, converted_path, link_resolver=None):
                raise ConversionError("cannot render", record)

        stage = ConversionStage(Exploding(), tmp_path)
        record = record_for(write_doc("a.md"))
        with pytest.raises(ConversionError):
            stage.convert(record, {})
        assert record.source_checksum is None

    def test_read_converted(self, stage, write_doc, record_for):
        record = stage.convert(record_for(write_doc("a.md", "text\n")), {})
        assert stage.read_converted(record) == "text\n"

    def test_read_converted_missing(self, stage, write_doc, record_for):
        record = record_for(write_doc("a.md"))
        with pytest.raises(ConversionError, match="Cannot read converted"):
            stage.read_converted(record)


class TestLinkDeferral:
    """Links to documents without a remote URI wait for a later run."""

    def test_unpublished_target_deferred_then_resolved(
        self, stage, write_doc, record_for
    ):
        a = record_for(write_doc("a.md", "See [B](b.md).\n"))
        b = record_for(write_doc("b.md", "# B\n"))

        a = stage.convert(a, _index(a, b))
        assert a.pending_links == ["b.md"]
        assert "[b.md B]" in stage.read_converted(a)

        b = b.model_copy(update={"remote_uri": "https://wiki/B"})
        reasons = stage.reasons_to_convert(a, _index(a, b))
        assert reasons == ["links now resolvable: b.md"]

        a = stage.convert(a, _index(a, b))
        assert a.pending_links == []
        assert "[https://wiki/B B]" in stage.read_converted(a)
        assert stage.reasons_to_convert(a, _index(a, b)) == []

    def test_pending_link_to_still_unpublished_target(
        self, stage, write_doc, record_for
    ):
        a = record_for(write_doc("a.md", "See [B](b.md).\n"))
        b = record_for(write_doc("b.md"))
        a = stage.convert(a, _index(a, b))
        assert stage.reasons_to_convert(a, _index(a, b)) == []

    def test_link_to_unmanaged_file_rendered_as_wiki_link(
        self, stage, write_doc, record_for
    ):
        a = record_for(write_doc("a.md", "See [N](notes.md).\n"))
        write_doc("notes.md")
        a = stage.convert(a, _index(a))
        assert a.pending_links == []
        assert "[wiki:notes.md N]" in stage.read_converted(a)
