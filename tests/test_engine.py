"""Tests for the publishing engine.

Covers the full index -> convert -> sync pipeline against a fake remote:
- First run creates every document; a second run makes no remote calls
  and leaves the index byte-identical
- Edited sources are updated, deleted sources are orphaned
- A failing record never stops its siblings and their progress is saved
- Records that fail to convert are not synced in the same run
- Bad remote settings or a corrupt index abort before anything changes
- Hand-edited index fields survive a run
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tracpub.config_schema import PublishConfig
from tracpub.converters.renderers import TracWikiRenderer
from tracpub.errors import BatchError, IndexStoreError
from tracpub.publish.engine import Publisher
from tracpub.publish.models import DocumentState


def _publisher(tmp_path: Path, remote=None, **config) -> Publisher:
    config.setdefault("footer_enabled", False)
    return Publisher(PublishConfig(**config), base_dir=tmp_path, remote=remote)


def _index_file(tmp_path: Path) -> Path:
    return tmp_path / ".tracpub" / "index.json"


class TestPublisherRun:
    """End-to-end runs of Publisher.run()."""

    def test_first_run_creates_everything(self, tmp_path, write_doc, make_remote):
        write_doc("a.md", "# A\n")
        write_doc("docs/b.md", "# B\n")
        remote = make_remote()

        reports = _publisher(tmp_path, remote).run()

        assert sorted(remote.actions()) == ["create", "create"]
        assert len(reports["index"].added) == 2
        assert len(reports["convert"].converted) == 2
        assert len(reports["sync"].created) == 2
        assert (tmp_path / "docs" / "b.wiki").read_text() == "= B =\n"

        data = json.loads(_index_file(tmp_path).read_text())
        assert sorted(data["documents"]) == ["a.md", "docs/b.md"]
        assert data["documents"]["a.md"]["remote_uri"] == "https://wiki.test/a"

    def test_second_run_is_a_no_op(self, tmp_path, write_doc, make_remote):
        write_doc("a.md")
        write_doc("b.md")
        _publisher(tmp_path, make_remote()).run()
        before = _index_file(tmp_path).read_bytes()

        remote = make_remote()
        reports = _publisher(tmp_path, remote).run()

        assert remote.calls == []
        assert len(reports["sync"].skipped) == 2
        assert _index_file(tmp_path).read_bytes() == before

    def test_edited_source_is_updated(self, tmp_path, write_doc, make_remote):
        write_doc("a.md", "one\n")
        write_doc("b.md", "two\n")
        _publisher(tmp_path, make_remote()).run()
        write_doc("a.md", "changed\n")

        remote = make_remote()
        reports = _publisher(tmp_path, remote).run()

        assert remote.calls == [("update", (tmp_path / "a.md").as_posix())]
        assert [r.source_path for r in reports["sync"].updated] == [
            (tmp_path / "a.md").as_posix()
        ]

    def test_deleted_source_is_orphaned_not_removed(
        self, tmp_path, write_doc, make_remote
    ):
        write_doc("a.md")
        gone = write_doc("b.md")
        _publisher(tmp_path, make_remote()).run()
        gone.unlink()

        remote = make_remote()
        publisher = _publisher(tmp_path, remote)
        reports = publisher.run()

        assert remote.calls == []
        assert reports["index"].orphaned == [gone.as_posix()]
        record = publisher.records[gone.as_posix()]
        assert record.orphaned is True
        assert record.remote_uri == "https://wiki.test/b"
        states = dict((r.source_path, s) for r, s in publisher.status())
        assert states[gone.as_posix()] is DocumentState.ORPHANED

    def test_restored_source_synced_again(self, tmp_path, write_doc, make_remote):
        path = write_doc("a.md", "one\n")
        _publisher(tmp_path, make_remote()).run()
        path.unlink()
        _publisher(tmp_path, make_remote()).run()
        write_doc("a.md", "back\n")

        remote = make_remote()
        reports = _publisher(tmp_path, remote).run()

        assert reports["index"].restored == [path.as_posix()]
        assert remote.actions() == ["update"]

    def test_partial_failure_saves_siblings(self, tmp_path, write_doc, make_remote):
        for name in ("a.md", "b.md", "c.md"):
            write_doc(name)
        remote = make_remote(fail_on={"b.md"})
        publisher = _publisher(tmp_path, remote, max_parallel=1)

        with pytest.raises(BatchError) as exc_info:
            publisher.run()

        err = exc_info.value
        assert err.stage == "sync"
        assert err.total == 3
        assert len(err.failures) == 1
        assert err.failures[0].source_path == (tmp_path / "b.md").as_posix()
        assert "status: 500" in err.describe()
        assert sorted(remote.actions()) == ["create", "create", "create"]

        sync_report = publisher.reports["sync"]
        assert [r.action for r in sync_report.results] == [
            "created",
            "failed",
            "created",
        ]

        saved = _publisher(tmp_path).records
        assert saved[(tmp_path / "a.md").as_posix()].remote_uri is not None
        assert saved[(tmp_path / "b.md").as_posix()].remote_uri is None
        assert saved[(tmp_path / "c.md").as_posix()].remote_uri is not None

        retry = make_remote()
        _publisher(tmp_path, retry).run()
        assert retry.calls == [("create", (tmp_path / "b.md").as_posix())]

    def test_failed_conversion_not_synced(self, tmp_path, write_doc, make_remote):
        class PickyRenderer(TracWikiRenderer):
            def render(self, text, link_resolver=None):
                if "BROKEN" in text:
                    raise RuntimeError("unsupported construct")
                return super().render(text, link_resolver)

        write_doc("a.md", "fine\n")
        bad = write_doc("b.md", "BROKEN\n")
        remote = make_remote()
        publisher = Publisher(
            PublishConfig(),
            base_dir=tmp_path,
            renderer=PickyRenderer(footer=None),
            remote=remote,
        )

        with pytest.raises(BatchError) as exc_info:
            publisher.run()

        assert exc_info.value.stage == "convert"
        assert exc_info.value.failures[0].source_path == bad.as_posix()
        assert remote.calls == [("create", (tmp_path / "a.md").as_posix())]
        synced = [r.source_path for r in publisher.reports["sync"].results]
        assert bad.as_posix() not in synced

    def test_failures_from_both_stages_merged(
        self, tmp_path, write_doc, make_remote
    ):
        class PickyRenderer(TracWikiRenderer):
            def render(self, text, link_resolver=None):
                if "BROKEN" in text:
                    raise RuntimeError("unsupported construct")
                return super().render(text, link_resolver)

        write_doc("a.md", "BROKEN\n")
        write_doc("b.md", "fine\n")
        publisher = Publisher(
            PublishConfig(),
            base_dir=tmp_path,
            renderer=PickyRenderer(footer=None),
            remote=make_remote(fail_on={"b.md"}),
        )

        with pytest.raises(BatchError) as exc_info:
            publisher.run()

        assert exc_info.value.stage == "convert+sync"
        assert len(exc_info.value.failures) == 2

    def test_cross_links_settle_on_next_run(self, tmp_path, write_doc, make_remote):
        write_doc("a.md", "See [B](b.md).\n")
        write_doc("b.md", "# B\n")
        first = make_remote()
        _publisher(tmp_path, first).run()
        assert "[b.md B]" in first.pages["https://wiki.test/a"]

        second = make_remote()
        _publisher(tmp_path, second).run()
        assert second.calls == [("update", (tmp_path / "a.md").as_posix())]
        assert "[https://wiki.test/b B]" in second.pages["https://wiki.test/a"]

        third = make_remote()
        _publisher(tmp_path, third).run()
        assert third.calls == []

    def test_search_path_outside_project(self, tmp_path, write_doc, make_remote):
        write_doc("shared/a.md", "See [B](b.md).\n")
        write_doc("shared/b.md", "# B\n")
        project = tmp_path / "proj"
        project.mkdir()
        shared = (tmp_path / "shared").as_posix()

        first = make_remote()
        publisher = _publisher(project, first, search_paths=["../shared"])
        publisher.run()
        assert sorted(publisher.records) == [f"{shared}/a.md", f"{shared}/b.md"]
        assert "[b.md B]" in first.pages["https://wiki.test/a"]

        second = make_remote()
        _publisher(project, second, search_paths=["../shared"]).run()
        assert second.calls == [("update", f"{shared}/a.md")]
        assert "[https://wiki.test/b B]" in second.pages["https://wiki.test/a"]

    def test_phase_subset_without_remote(self, tmp_path, write_doc):
        write_doc("a.md")
        publisher = _publisher(tmp_path)
        reports = publisher.run(["index", "convert"])
        assert set(reports) == {"index", "convert"}
        status = publisher.status()
        assert [s for _, s in status] == [DocumentState.NEW]

    def test_markdown_output_not_rediscovered(self, tmp_path, write_doc, make_remote):
        write_doc("a.md", "# A\n")
        publisher = _publisher(tmp_path, make_remote(), renderer="markdown")
        publisher.run()
        assert (tmp_path / ".tracpub" / "converted" / "a.md").is_file()

        reports = _publisher(tmp_path, make_remote(), renderer="markdown").run()
        assert reports["index"].discovered == 1
        assert reports["index"].added == []


class TestPublisherFailFast:
    """Fatal errors abort before any phase touches the index."""

    def test_unknown_phase(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown phase"):
            _publisher(tmp_path).run(["index", "deploy"])

    def test_missing_remote(self, tmp_path, write_doc):
        write_doc("a.md")
        with pytest.raises(ValueError, match="No remote configured"):
            _publisher(tmp_path).run()
        assert not _index_file(tmp_path).exists()

    def test_bad_remote_settings(self, tmp_path, write_doc):
        def factory():
            raise ValueError("Trac URL is required")

        write_doc("a.md")
        publisher = Publisher(
            PublishConfig(), base_dir=tmp_path, remote_factory=factory
        )
        with pytest.raises(ValueError, match="Trac URL is required"):
            publisher.run()
        assert not _index_file(tmp_path).exists()

    def test_corrupt_index(self, tmp_path, write_doc, make_remote):
        write_doc("a.md")
        index = _index_file(tmp_path)
        index.parent.mkdir()
        index.write_text("{broken", encoding="utf-8")
        remote = make_remote()

        with pytest.raises(IndexStoreError):
            _publisher(tmp_path, remote).run()
        assert remote.calls == []
        assert index.read_text(encoding="utf-8") == "{broken"

    def test_unwritable_index_stops_before_sync(
        self, tmp_path, write_doc, make_remote, monkeypatch
    ):
        write_doc("a.md")
        remote = make_remote()
        publisher = _publisher(tmp_path, remote)
        publisher.run(["index"])

        def fail_save(records):
            raise IndexStoreError("disk full")

        monkeypatch.setattr(publisher.store, "save", fail_save)

        with pytest.raises(IndexStoreError, match="disk full"):
            publisher.run(["convert", "sync"])
        assert remote.calls == []


class TestPublisherMerge:
    """Hand-maintained index fields are preserved."""

    def test_existing_fields_survive(self, tmp_path, write_doc, make_remote):
        write_doc("a.md")
        index = _index_file(tmp_path)
        index.parent.mkdir()
        index.write_text(
            json.dumps(
                {
                    "version": 1,
                    "documents": {
                        "a.md": {
                            "title": "Custom Title",
                            "tags": ["keep"],
                            "extra_properties": {"trac_page": "Pinned"},
                            "owner": "docs-team",
                        }
                    },
                }
            ),
            encoding="utf-8",
        )
        remote = make_remote()

        _publisher(tmp_path, remote).run()

        assert remote.sent[0].extra_properties["trac_page"] == "Pinned"
        doc = json.loads(index.read_text())["documents"]["a.md"]
        assert doc["title"] == "Custom Title"
        assert doc["tags"] == ["keep"]
        assert doc["owner"] == "docs-team"
        assert doc["extra_properties"] == {"trac_page": "Pinned", "page_id": "1"}
