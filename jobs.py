# jobs.py
import os
import time
import uuid
import sqlite3
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime

import config
import db
from classifier import classify_source
from events import EventLog
from models import ScanResultItem, ScanSummary
from progress import (
    ProgressTracker, summary_walk_progress, catalog_progress,
    CHAT_DETECTED, DOCUMENTS_COUNTED, CATALOG_CEILING, COMPLETE,
)
from roots import resolve_roots, detect_chat_locations
from scanner import iter_candidates, iter_git_repos, count_documents, file_type_of

KIND_SUMMARY = "summary"
KIND_CATALOG = "catalog"

FINISHED = ("done", "cancelled", "error")


class ProjectNotFoundError(LookupError):
    """No project matches the key a scan was requested for."""


class ScanJob:
    def __init__(self, kind, project_id):
        self.id = uuid.uuid4().hex
        self.kind = kind
        self.project_id = project_id
        self.status = "idle"
        self.step = ""
        self.error = None
        self.result = None
        self.stored = 0
        self.skipped = 0
        self.started_at = None
        self.ended_at = None
        self.finished_seq = 0
        self.events = EventLog()
        self.cancel_event = threading.Event()
        self.done_event = threading.Event()

    @property
    def cancelled(self):
        return self.cancel_event.is_set()

    @property
    def finished(self):
        return self.done_event.is_set()

    def set_status(self, status, step="", error=None):
        self.status = status
        self.step = step
        self.error = error
        now = datetime.now().isoformat(timespec="seconds")
        if status == "resolving" and self.started_at is None:
            self.started_at = now
        elif status in FINISHED:
            self.ended_at = now
        logging.info(f"Job {self.id} ({self.kind}) {status}: {step} error={error}")

    def cancel(self):
        self.cancel_event.set()

    def wait(self, timeout=None):
        return self.done_event.wait(timeout)

    def snapshot(self):
        result = self.result.to_dict() if isinstance(self.result, ScanSummary) else self.result
        return {
            "id": self.id,
            "kind": self.kind,
            "projectId": self.project_id,
            "status": self.status,
            "step": self.step,
            "error": self.error,
            "stored": self.stored,
            "skipped": self.skipped,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "result": result,
        }


JOBS_LOCK = threading.Lock()
JOBS = {}
_FINISH_COUNTER = 0

_PROJECT_LOCKS_GUARD = threading.Lock()
_PROJECT_LOCKS = {}


def _register(job):
    with JOBS_LOCK:
        JOBS[job.id] = job


def _mark_finished(job):
    global _FINISH_COUNTER
    with JOBS_LOCK:
        _FINISH_COUNTER += 1
        job.finished_seq = _FINISH_COUNTER
    _prune()
    job.done_event.set()


def _prune():
    """Keep the newest MAX_FINISHED_JOBS finished jobs and drop idle project locks."""
    with _PROJECT_LOCKS_GUARD:
        with JOBS_LOCK:
            finished = sorted((j for j in JOBS.values() if j.finished_seq),
                              key=lambda j: j.finished_seq)
            summaries = [j for j in finished
                         if j.kind == KIND_SUMMARY and j.status == "done" and j.result is not None]
            keep_summary = summaries[-1] if summaries else None
            cap = max(config.MAX_FINISHED_JOBS, 0)
            for old in finished[:len(finished) - cap]:
                if old is not keep_summary:
                    del JOBS[old.id]
            active = {j.project_id for j in JOBS.values() if not j.finished_seq}
        for project_id in list(_PROJECT_LOCKS):
            if project_id not in active and not _PROJECT_LOCKS[project_id].locked():
                del _PROJECT_LOCKS[project_id]


def _project_lock(project_id):
    with _PROJECT_LOCKS_GUARD:
        lock = _PROJECT_LOCKS.get(project_id)
        if lock is None:
            lock = _PROJECT_LOCKS[project_id] = threading.Lock()
        return lock


def get_job(job_id):
    with JOBS_LOCK:
        return JOBS.get(job_id)


def cancel_job(job_id):
    job = get_job(job_id)
    if job is None:
        return False
    job.cancel()
    return True


def latest_summary():
    """Summary of the most recently completed summary scan, or None."""
    with JOBS_LOCK:
        done = [j for j in JOBS.values()
                if j.kind == KIND_SUMMARY and j.status == "done" and j.result is not None]
    if not done:
        return None
    return max(done, key=lambda j: j.finished_seq).result


def _iso(ts):
    if ts is None:
        return None
    return datetime.fromtimestamp(ts).isoformat(timespec="seconds")


def build_result(project_id, path, st, scan_scope):
    """One catalog record. Unreadable metadata still produces a record, flagged invalid."""
    if st is None:
        created = modified = None
        size = 0
        valid = False
    else:
        created = _iso(getattr(st, "st_birthtime", st.st_ctime))
        modified = _iso(st.st_mtime)
        size = st.st_size
        valid = True
    return ScanResultItem(
        id=db.result_id(project_id, path),
        project_id=project_id,
        file_path=path,
        file_type=file_type_of(path),
        source=classify_source(path, scan_scope),
        created_at=created,
        modified_at=modified,
        size_bytes=size,
        is_valid=valid,
    )


def _count_documents_parallel(roots, time_range, now, cancel):
    if not roots:
        return 0
    total = 0
    workers = max(1, min(config.DOC_COUNT_WORKERS, len(roots)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(count_documents, root, time_range, now, cancel): root
            for root in roots
        }
        for future in as_completed(futures):
            try:
                total += future.result()
            except OSError as e:
                logging.warning(f"Document count failed for {futures[future]}: {e}")
    return total


# -------- Background Jobs

def run_summary_scan(job, project, time_range, env):
    ev = job.events
    tracker = ProgressTracker(ev.progress)
    summary = ScanSummary()
    now = time.time()
    try:
        job.set_status("resolving", step="init")
        ev.log("check_circle", "Scan sequence initialised [OK]")
        if config.DEV:
            ev.log("shield", "DEV=true detected, skipping cloud verification")
        ev.log("folder", f"Working directory: {project.folder_path}")

        chats = detect_chat_locations(**env)
        for c in chats:
            ev.log("chat", f"Chat data found: {c.absolute_path} ({c.application_name})")
        summary.chat_locations = chats
        tracker.report(CHAT_DETECTED)

        roots = resolve_roots(project.scan_scope, project.scan_folders, project.folder_path, **env)

        job.set_status("walking", step=f"git-sweep({len(roots)})")
        for idx, root in enumerate(roots, 1):
            if job.cancelled:
                break
            if os.path.exists(root):
                ev.log("folder_open", f"Scanning directory: {root}")
                for repo in iter_git_repos(root, job.cancel_event):
                    summary.git_repo_count += 1
                    ev.log("data_object", f"Git repository found: {repo}")
            tracker.report(summary_walk_progress(idx, len(roots)))

        if not job.cancelled:
            job.set_status("walking", step="count-documents")
            existing = [r for r in roots if os.path.exists(r)]
            summary.document_count = _count_documents_parallel(
                existing, time_range, now, job.cancel_event
            )
            ev.log("description", f"Document count complete: {summary.document_count} candidate files")
            tracker.report(DOCUMENTS_COUNTED)

        job.result = summary
        if job.cancelled:
            job.set_status("cancelled", step="summary-scan")
            ev.log("cancel", "Scan cancelled")
            ev.done(summary.to_dict())
            return

        job.set_status("persisting", step="save-summary")
        try:
            db.save_scan_summary(project.id, summary)
        except sqlite3.Error as e:
            logging.warning(f"Could not store summary for project {project.id}: {e}")

        ev.log("sync", "Finalising scan summary")
        tracker.report(COMPLETE)
        job.set_status("done", step="complete")
        ev.done(summary.to_dict())
    except Exception as e:
        logging.exception(f"Summary scan {job.id} failed")
        job.set_status("error", step="summary-scan", error=str(e))
        ev.log("error", f"Scan failed: {e}")
        ev.done(summary.to_dict())
    finally:
        _mark_finished(job)


def run_catalog_scan(job, project, scan_scope, scan_folders, env):
    ev = job.events
    tracker = ProgressTracker(ev.progress)
    now = time.time()
    try:
        # same-project catalog scans wait for each other instead of interleaving
        with _project_lock(project.id):
            job.set_status("resolving", step="replace-all")
            ev.log("check_circle", "Catalog scan initialised [OK]")
            tracker.report(0)
            try:
                removed = db.replace_all(project.id)
                ev.log("delete_sweep", f"Cleared {removed} previous results")
            except sqlite3.Error as e:
                logging.warning(f"Could not clear results for project {project.id}: {e}")

            roots = resolve_roots(scan_scope, scan_folders, project.folder_path, **env)
            ev.log("folder", f"{len(roots)} scan roots resolved")

            job.set_status("walking", step=f"catalog({len(roots)})")
            for idx, root in enumerate(roots, 1):
                if job.cancelled:
                    break
                if not os.path.exists(root):
                    ev.log("block", f"Skipped missing directory: {root}")
                else:
                    ev.log("folder_open", f"Scanning directory: {root}")
                    for path, st in iter_candidates(root, project.time_range, now, job.cancel_event):
                        item = build_result(project.id, path, st, scan_scope)
                        try:
                            db.upsert_result(item)
                            job.stored += 1
                        except sqlite3.Error as e:
                            job.skipped += 1
                            logging.warning(f"Skipped record {path}: {e}")
                tracker.report(catalog_progress(idx, len(roots)))

            job.result = ScanSummary()
            if job.cancelled:
                job.set_status("cancelled", step="catalog-scan")
                ev.log("cancel", f"Scan cancelled after {job.stored} files")
                ev.done(job.result.to_dict())
                return

            job.set_status("persisting", step="finalise")
            tracker.report(CATALOG_CEILING)
            ev.log("description", f"Catalog complete: {job.stored} files stored, {job.skipped} skipped")
            tracker.report(COMPLETE)
            job.set_status("done", step="complete")
            ev.done(job.result.to_dict())
    except Exception as e:
        logging.exception(f"Catalog scan {job.id} failed")
        job.set_status("error", step="catalog-scan", error=str(e))
        ev.log("error", f"Scan failed: {e}")
        ev.done(ScanSummary().to_dict())
    finally:
        _mark_finished(job)


# -------- Entry points (return at once; results arrive on job.events)

def start_summary_scan(project_name, time_range=None, platform=None, home=None, environ=None):
    project = db.get_project_by_name(project_name)
    if project is None:
        raise ProjectNotFoundError(f"Project not found: {project_name}")
    time_range = time_range if time_range is not None else project.time_range
    env = {"platform": platform, "home": home, "environ": environ}

    job = ScanJob(KIND_SUMMARY, project.id)
    _register(job)
    threading.Thread(target=run_summary_scan, args=(job, project, time_range, env), daemon=True).start()
    return job


def start_catalog_scan(project_id, scan_scope=None, scan_folders=None, platform=None, home=None, environ=None):
    project = db.get_project_by_id(project_id)
    if project is None:
        raise ProjectNotFoundError(f"Project not found: {project_id}")
    scope = scan_scope or project.scan_scope
    if scan_folders is None:
        folders = project.scan_folders
    elif isinstance(scan_folders, str):
        folders = [scan_folders]
    else:
        folders = list(scan_folders)
    env = {"platform": platform, "home": home, "environ": environ}

    job = ScanJob(KIND_CATALOG, project.id)
    _register(job)
    threading.Thread(target=run_catalog_scan, args=(job, project, scope, folders, env), daemon=True).start()
    return job
