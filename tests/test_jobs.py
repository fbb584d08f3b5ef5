"""
Tests for jobs.py
Summary and catalog scans run end to end against temporary trees.
"""
import sqlite3
import time

import pytest

import config
import db
import jobs
from jobs import (
    start_summary_scan, start_catalog_scan, ScanJob, ProjectNotFoundError,
    run_catalog_scan, latest_summary, get_job, cancel_job, KIND_CATALOG,
)
from events import SCAN_LOG, SCAN_PROGRESS, SCAN_DONE
from models import SCOPE_ALL, SCOPE_CUSTOM
from conftest import make_file, make_repo

LINUX = {"platform": "linux", "environ": {}}


def _wait(job):
    assert job.wait(timeout=30), "scan did not finish"
    return job


def _progress(job):
    return [p["progress"] for p in job.events.channel(SCAN_PROGRESS)]


def _record_key(item):
    return (item.id, item.project_id, item.file_path, item.file_type, item.source,
            item.created_at, item.modified_at, item.size_bytes, item.is_valid)


@pytest.fixture
def home(tmp_path):
    home = tmp_path / "home" / "u"
    docs = home / "Documents"
    make_file(docs / "a.md")
    make_file(docs / "b.exe")
    make_file(docs / "c.md", age_days=400)
    make_repo(home / "Projects" / "repo")
    make_file(home / "Projects" / "repo" / "README.md", age_days=500)
    return home


class TestSummaryScan:

    def test_scenario_counts(self, catalog, home, tmp_path):
        project = catalog.create_project("alpha", folder_path=str(tmp_path / "managed"))

        job = _wait(start_summary_scan("alpha", "past_year", home=str(home), **LINUX))

        assert job.status == "done"
        assert job.result.document_count == 1
        assert job.result.git_repo_count == 1
        assert job.result.chat_locations == []
        assert catalog.get_project_by_id(project.id).scan_summary == job.result

    def test_progress_checkpoints(self, catalog, home):
        catalog.create_project("alpha")
        job = _wait(start_summary_scan("alpha", "past_year", home=str(home), **LINUX))

        progress = _progress(job)
        assert progress[0] == 18
        assert 84 in progress
        assert progress[-1] == 100
        assert progress == sorted(progress)
        assert all(18 <= p <= 60 for p in progress[1:progress.index(84)])

    def test_done_is_last_event(self, catalog, home):
        catalog.create_project("alpha")
        job = _wait(start_summary_scan("alpha", "past_year", home=str(home), **LINUX))

        events = job.events.since(0)
        assert events[-1]["channel"] == SCAN_DONE
        assert events[-1]["payload"]["document_count"] == 1
        texts = [e["text"] for e in job.events.channel(SCAN_LOG)]
        assert any("Git repository found" in t for t in texts)

    def test_time_range_defaults_to_project(self, catalog, home):
        catalog.create_project("alpha", time_range="")
        job = _wait(start_summary_scan("alpha", home=str(home), **LINUX))
        # a.md, c.md and the repo README all count without a time filter
        assert job.result.document_count == 3

    def test_chat_locations_reported(self, catalog, tmp_path):
        home = tmp_path / "Users" / "u"
        wecom = home / "Library/Containers/com.tencent.WeWorkMac/Data/Library/Application Support/WXWork"
        make_file(wecom / "file.pdf")
        catalog.create_project("alpha")

        job = _wait(start_summary_scan("alpha", home=str(home), platform="darwin", environ={}))

        assert [c.application_name for c in job.result.chat_locations] == ["WeCom"]
        assert job.result.document_count == 1

    def test_latest_summary_tracks_last_finished(self, catalog, home):
        catalog.create_project("alpha")
        job = _wait(start_summary_scan("alpha", "past_year", home=str(home), **LINUX))
        assert latest_summary() is job.result

    def test_dev_mode_logs_shield(self, catalog, home, monkeypatch):
        monkeypatch.setattr(config, "DEV", True)
        catalog.create_project("alpha")
        job = _wait(start_summary_scan("alpha", "past_year", home=str(home), **LINUX))

        logs = job.events.channel(SCAN_LOG)
        assert logs[1]["icon"] == "shield"
        assert "DEV=true" in logs[1]["text"]

    def test_no_shield_outside_dev_mode(self, catalog, home, monkeypatch):
        monkeypatch.setattr(config, "DEV", False)
        catalog.create_project("alpha")
        job = _wait(start_summary_scan("alpha", "past_year", home=str(home), **LINUX))
        assert all(e["icon"] != "shield" for e in job.events.channel(SCAN_LOG))

    def test_unknown_project_raises_before_starting(self, catalog):
        with pytest.raises(ProjectNotFoundError):
            start_summary_scan("ghost")


class TestCatalogScan:

    def test_custom_scope_records(self, catalog, tmp_path):
        folder = tmp_path / "x"
        make_file(folder / "Downloads" / "a.pdf", content="12345")
        make_file(folder / "notes.md")
        make_file(folder / "tool.exe")
        project = catalog.create_project("alpha", scan_scope=SCOPE_CUSTOM, scan_folders=[str(folder)])

        job = _wait(start_catalog_scan(project.id, home=str(tmp_path), **LINUX))

        assert job.status == "done"
        assert job.stored == 2
        page = catalog.query_results(project.id, 1, 0)
        by_path = {i.file_path: i for i in page["items"]}
        assert set(by_path) == {str(folder / "Downloads" / "a.pdf"), str(folder / "notes.md")}
        pdf = by_path[str(folder / "Downloads" / "a.pdf")]
        assert pdf.source == "CustomSpecified"
        assert pdf.file_type == "pdf"
        assert pdf.size_bytes == 5
        assert pdf.is_valid is True
        assert pdf.modified_at is not None

    def test_all_scope_classifies_by_folder(self, catalog, tmp_path):
        home = tmp_path / "home" / "u"
        make_file(home / "Downloads" / "a.pdf")
        make_file(home / "Desktop" / "b.md")
        project = catalog.create_project("alpha", folder_path=str(tmp_path / "managed"))

        _wait(start_catalog_scan(project.id, home=str(home), **LINUX))

        sources = {i.source for i in catalog.query_results(project.id, 1, 0)["items"]}
        assert sources == {"Downloads", "Desktop"}

    def test_rescan_is_idempotent(self, catalog, tmp_path):
        folder = tmp_path / "x"
        for name in ("a.md", "b.pdf", "sub/c.csv"):
            make_file(folder / name)
        project = catalog.create_project("alpha", scan_scope=SCOPE_CUSTOM, scan_folders=[str(folder)])

        _wait(start_catalog_scan(project.id, **LINUX))
        first = {_record_key(i) for i in catalog.query_results(project.id, 1, 0)["items"]}
        _wait(start_catalog_scan(project.id, **LINUX))
        second = {_record_key(i) for i in catalog.query_results(project.id, 1, 0)["items"]}

        assert first == second
        assert len(second) == 3

    def test_rescan_drops_deleted_files(self, catalog, tmp_path):
        folder = tmp_path / "x"
        make_file(folder / "a.md")
        gone = make_file(folder / "b.md")
        project = catalog.create_project("alpha", scan_scope=SCOPE_CUSTOM, scan_folders=[str(folder)])

        _wait(start_catalog_scan(project.id, **LINUX))
        gone.unlink()
        _wait(start_catalog_scan(project.id, **LINUX))

        assert [i.file_path for i in catalog.query_results(project.id, 1, 0)["items"]] == [str(folder / "a.md")]

    def test_empty_override_falls_back_to_managed_folder(self, catalog, tmp_path):
        managed = tmp_path / "managed"
        make_file(managed / "kept.md")
        make_file(tmp_path / "x" / "other.md")
        project = catalog.create_project("alpha", folder_path=str(managed),
                                         scan_scope=SCOPE_CUSTOM, scan_folders=[str(tmp_path / "x")])

        _wait(start_catalog_scan(project.id, SCOPE_CUSTOM, [], **LINUX))

        assert [i.file_path for i in catalog.query_results(project.id, 1, 0)["items"]] == [str(managed / "kept.md")]

    def test_lone_folder_string_is_one_root(self, catalog, tmp_path):
        folder = tmp_path / "x"
        make_file(folder / "a.md")
        project = catalog.create_project("alpha", folder_path=str(tmp_path / "managed"))

        job = _wait(start_catalog_scan(project.id, SCOPE_CUSTOM, str(folder), **LINUX))

        assert job.stored == 1
        assert [i.file_path for i in catalog.query_results(project.id, 1, 0)["items"]] == [str(folder / "a.md")]

    def test_progress_and_done_payload(self, catalog, tmp_path):
        for name in ("a", "b", "c"):
            make_file(tmp_path / name / "f.md")
        folders = [str(tmp_path / n) for n in ("a", "b", "c", "missing")]
        project = catalog.create_project("alpha", scan_scope=SCOPE_CUSTOM, scan_folders=folders)

        job = _wait(start_catalog_scan(project.id, **LINUX))

        progress = _progress(job)
        assert progress[0] == 0
        assert progress[-1] == 100
        assert 95 in progress
        assert progress == sorted(progress)
        assert job.events.channel(SCAN_DONE) == [{"git_repo_count": 0, "document_count": 0, "chat_locations": []}]
        assert job.stored == 3

    def test_persistence_failure_skips_record(self, catalog, tmp_path, monkeypatch):
        folder = tmp_path / "x"
        make_file(folder / "good.md")
        make_file(folder / "bad.md")
        project = catalog.create_project("alpha", scan_scope=SCOPE_CUSTOM, scan_folders=[str(folder)])
        real_upsert = db.upsert_result

        def flaky_upsert(item):
            if item.file_path.endswith("bad.md"):
                raise sqlite3.OperationalError("unable to open database file")
            return real_upsert(item)

        monkeypatch.setattr(db, "upsert_result", flaky_upsert)
        job = _wait(start_catalog_scan(project.id, **LINUX))

        assert job.status == "done"
        assert (job.stored, job.skipped) == (1, 1)
        assert catalog.count_results(project.id) == 1

    def test_cancelled_before_walk(self, catalog, tmp_path):
        make_file(tmp_path / "x" / "a.md")
        project = catalog.create_project("alpha", scan_scope=SCOPE_CUSTOM, scan_folders=[str(tmp_path / "x")])
        job = ScanJob(KIND_CATALOG, project.id)
        job.cancel()

        run_catalog_scan(job, project, SCOPE_CUSTOM, project.scan_folders, {})

        assert job.status == "cancelled"
        assert job.finished
        assert job.stored == 0
        assert job.events.channel(SCAN_DONE)

    def test_unknown_project_raises_before_starting(self, catalog):
        with pytest.raises(ProjectNotFoundError):
            start_catalog_scan("ghost")


class TestRegistry:

    def test_jobs_registered_and_cancellable(self, catalog, tmp_path):
        project = catalog.create_project("alpha", scan_scope=SCOPE_CUSTOM, scan_folders=[str(tmp_path)])
        job = _wait(start_catalog_scan(project.id, **LINUX))
        assert get_job(job.id) is job
        assert cancel_job(job.id) is True
        assert cancel_job("nope") is False
        snap = job.snapshot()
        assert snap["status"] == "done"
        assert snap["projectId"] == project.id
        assert snap["result"] == {"git_repo_count": 0, "document_count": 0, "chat_locations": []}

    def test_finished_jobs_are_capped(self, catalog, tmp_path, monkeypatch):
        monkeypatch.setattr(config, "MAX_FINISHED_JOBS", 2)
        project = catalog.create_project("alpha", scan_scope=SCOPE_CUSTOM, scan_folders=[str(tmp_path)])

        first, second, third = (_wait(start_catalog_scan(project.id, **LINUX)) for _ in range(3))

        assert get_job(first.id) is None
        assert get_job(second.id) is second
        assert get_job(third.id) is third
        assert project.id not in jobs._PROJECT_LOCKS

    def test_cap_keeps_latest_summary(self, catalog, home, monkeypatch):
        monkeypatch.setattr(config, "MAX_FINISHED_JOBS", 1)
        project = catalog.create_project("alpha", scan_scope=SCOPE_CUSTOM, scan_folders=[str(home)])
        summary_job = _wait(start_summary_scan("alpha", "past_year", home=str(home), **LINUX))

        older = _wait(start_catalog_scan(project.id, **LINUX))
        newest = _wait(start_catalog_scan(project.id, **LINUX))

        assert latest_summary() is summary_job.result
        assert get_job(older.id) is None
        assert get_job(newest.id) is newest
