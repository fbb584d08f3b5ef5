from flask import Flask, request, jsonify
from flask_cors import CORS
import sqlite3, logging
from datetime import datetime

# ---- your modules
import config
import db
from jobs import (
    start_summary_scan, start_catalog_scan, get_job, cancel_job, latest_summary,
    ProjectNotFoundError,
)
from models import SCOPE_ALL, SCOPE_CUSTOM

# -------- Setup logging --------
logging.basicConfig(
    filename=config.LOG_FILE,
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)

app = Flask(__name__)
CORS(app)


CATALOG = {"ready": False}


def init_catalog():
    """Open the catalog. A failure here must not stop the server; later requests retry."""
    try:
        db.init_db()
    except (sqlite3.Error, OSError) as e:
        CATALOG["ready"] = False
        logging.warning(f"Catalog unavailable: {e}")
        return False
    CATALOG["ready"] = True
    return True


def _catalog_or_503():
    if CATALOG["ready"] or init_catalog():
        return None
    return _error("Catalog unavailable", 503)


def _error(message, status):
    return jsonify({"ok": False, "error": message}), status


def _int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _str_list(value):
    """None stays None, a lone string becomes [s], a list must hold only strings."""
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return value
    raise ValueError("expected a string or a list of strings")


def _job_or_404(data):
    job = get_job((data.get("jobId") or "").strip())
    if job is None:
        return None, _error("Unknown job", 404)
    return job, None


# -------- Task endpoint
@app.route("/task", methods=["POST", "OPTIONS"])
def task():
    if request.method == "OPTIONS":
        return ("", 204)

    data = request.get_json(silent=True) or {}
    action = (data.get("action") or "").strip().lower()

    if action in ("init", "scan", "scan-by-id", "results", "create-project"):
        err = _catalog_or_503()
        if err:
            return err

    if action == "init":
        return jsonify({"ok": True, "message": "Catalog ready."})

    elif action == "scan":
        name = (data.get("project") or "").strip()
        if not name:
            return _error("No project provided", 400)
        try:
            job = start_summary_scan(name, data.get("timeRange"))
        except ProjectNotFoundError as e:
            return _error(str(e), 404)
        return jsonify({"ok": True, "jobId": job.id, "message": "Scan started in background."})

    elif action == "scan-by-id":
        project_id = (data.get("projectId") or "").strip()
        if not project_id:
            return _error("No projectId provided", 400)
        scope = data.get("scanScope")
        if scope and scope not in (SCOPE_ALL, SCOPE_CUSTOM):
            return _error(f"Invalid scanScope: {scope}", 400)
        try:
            folders = _str_list(data.get("scanFolders"))
        except ValueError as e:
            return _error(f"Invalid scanFolders: {e}", 400)
        try:
            job = start_catalog_scan(project_id, scope, folders)
        except ProjectNotFoundError as e:
            return _error(str(e), 404)
        return jsonify({"ok": True, "jobId": job.id, "message": "Catalog scan started in background."})

    elif action == "status":
        job, err = _job_or_404(data)
        if err:
            return err
        return jsonify({"ok": True, "job": job.snapshot()})

    elif action == "events":
        job, err = _job_or_404(data)
        if err:
            return err
        events = job.events.since(_int(data.get("after"), 0))
        return jsonify({"ok": True, "events": events, "done": job.finished})

    elif action == "cancel":
        if not cancel_job((data.get("jobId") or "").strip()):
            return _error("Unknown job", 404)
        return jsonify({"ok": True, "message": "Cancellation requested."})

    elif action == "summary":
        summary = latest_summary()
        return jsonify({"ok": True, "summary": summary.to_dict() if summary else None})

    elif action == "results":
        project_id = (data.get("projectId") or "").strip()
        if not project_id:
            return _error("No projectId provided", 400)
        try:
            types = _str_list(data.get("types") or None)
        except ValueError as e:
            return _error(f"Invalid types: {e}", 400)
        try:
            page = db.query_results(
                project_id,
                page=_int(data.get("page"), 1),
                page_size=_int(data.get("pageSize"), config.DEFAULT_PAGE_SIZE),
                text_filter=data.get("q") or None,
                type_filter=types,
            )
        except sqlite3.Error as e:
            logging.warning(f"Results query failed: {e}")
            return _error(str(e), 500)
        page["items"] = [item.to_dict() for item in page["items"]]
        return jsonify({"ok": True, **page})

    elif action == "create-project":
        name = (data.get("name") or "").strip()
        if not name:
            return _error("No name provided", 400)
        scope = data.get("scanScope") or SCOPE_ALL
        if scope not in (SCOPE_ALL, SCOPE_CUSTOM):
            return _error(f"Invalid scanScope: {scope}", 400)
        try:
            folders = _str_list(data.get("scanFolders")) or []
        except ValueError as e:
            return _error(f"Invalid scanFolders: {e}", 400)
        try:
            project = db.create_project(
                name,
                folder_path=data.get("folderPath"),
                time_range=data.get("timeRange") or "",
                scan_scope=scope,
                scan_folders=folders,
            )
        except sqlite3.IntegrityError:
            return _error(f"Project already exists: {name}", 409)
        return jsonify({"ok": True, "project": {
            "id": project.id,
            "name": project.name,
            "folder_path": project.folder_path,
            "time_range": project.time_range,
            "scan_scope": project.scan_scope,
            "scan_folders": project.scan_folders,
        }})

    else:
        return _error(f"Unknown action: {action}", 400)

@app.route("/", methods=["GET", "POST"])
def root():
    return jsonify({"message": "📁 Project Scanner API running."})

if __name__ == "__main__":
    print(f"\n🚀 Starting Project Scanner at {datetime.now().isoformat(timespec='seconds')}")
    logging.info("Application started")
    init_catalog()
    app.run(host=config.API_HOST, port=config.API_PORT)
