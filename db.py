import sqlite3
import os
import json
import uuid
from contextlib import contextmanager
from datetime import datetime

import config
from models import Project, ScanResultItem, ScanSummary, SCOPE_ALL

DB_PATH = config.DB_PATH

# Namespace for deterministic result ids: same project + path → same id
RESULT_ID_NAMESPACE = uuid.UUID("6f1c3a52-9d0e-4b8f-a6b1-2f7e5c0d9a41")

RESULT_COLUMNS = [
    "id", "project_id", "file_path", "file_type", "source",
    "created_at", "modified_at", "size_bytes", "is_valid",
    "inserted_at", "updated_at",
]


def _now():
    return datetime.now().isoformat(timespec="microseconds")


@contextmanager
def get_connection():
    """One connection per operation; always closed."""
    conn = sqlite3.connect(DB_PATH, timeout=5)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    os.makedirs(os.path.dirname(DB_PATH), exist_ok=True) if os.path.dirname(DB_PATH) else None
    with get_connection() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                name TEXT UNIQUE NOT NULL,
                folder_path TEXT NOT NULL,
                time_range TEXT DEFAULT '',
                scan_scope TEXT DEFAULT 'ALL',
                scan_folders TEXT DEFAULT '[]',
                scan_summary TEXT,
                created_at TEXT,
                updated_at TEXT
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS scan_results (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                file_path TEXT NOT NULL,
                file_type TEXT,
                source TEXT,
                created_at TEXT,
                modified_at TEXT,
                size_bytes INTEGER NOT NULL DEFAULT 0 CHECK (size_bytes >= 0),
                is_valid INTEGER NOT NULL DEFAULT 1,
                inserted_at TEXT,
                updated_at TEXT,
                UNIQUE (project_id, file_path)
            )
        ''')
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_scan_results_project ON scan_results (project_id)"
        )
        conn.commit()


# ---------- PROJECTS (lookup only; lifecycle lives elsewhere) ----------

def _row_to_project(row):
    summary = json.loads(row["scan_summary"]) if row["scan_summary"] else None
    return Project(
        id=row["id"],
        name=row["name"],
        folder_path=row["folder_path"],
        time_range=row["time_range"] or "",
        scan_scope=row["scan_scope"] or SCOPE_ALL,
        scan_folders=json.loads(row["scan_folders"] or "[]"),
        scan_summary=ScanSummary.from_dict(summary) if summary else None,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def create_project(name, folder_path=None, time_range="", scan_scope=SCOPE_ALL, scan_folders=None):
    project_id = uuid.uuid4().hex
    folder_path = folder_path or os.path.join(config.PROJECTS_DIR, name)
    now = _now()
    with get_connection() as conn:
        conn.execute('''
            INSERT INTO projects
            (id, name, folder_path, time_range, scan_scope, scan_folders, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ''', (
            project_id, name, folder_path, time_range or "",
            scan_scope or SCOPE_ALL, json.dumps(list(scan_folders or [])), now, now
        ))
        conn.commit()
    return get_project_by_id(project_id)


def get_project_by_id(project_id):
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
    return _row_to_project(row) if row else None


def get_project_by_name(name):
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM projects WHERE name = ?", (name,)).fetchone()
    return _row_to_project(row) if row else None


def save_scan_summary(project_id, summary: ScanSummary):
    with get_connection() as conn:
        conn.execute(
            "UPDATE projects SET scan_summary = ?, updated_at = ? WHERE id = ?",
            (json.dumps(summary.to_dict()), _now(), project_id),
        )
        conn.commit()


# ---------- SCAN RESULTS ----------

def result_id(project_id, file_path):
    return str(uuid.uuid5(RESULT_ID_NAMESPACE, f"{project_id}\0{file_path}"))


def replace_all(project_id):
    """Drop every stored result of a project; a full rescan starts from nothing."""
    with get_connection() as conn:
        cur = conn.execute("DELETE FROM scan_results WHERE project_id = ?", (project_id,))
        conn.commit()
        return cur.rowcount


def upsert_result(item: ScanResultItem):
    """Insert or replace by (project_id, file_path). inserted_at survives a replace."""
    now = _now()
    with get_connection() as conn:
        conn.execute('''
            INSERT INTO scan_results
            (id, project_id, file_path, file_type, source, created_at, modified_at,
             size_bytes, is_valid, inserted_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(project_id, file_path) DO UPDATE SET
                file_type=excluded.file_type,
                source=excluded.source,
                created_at=excluded.created_at,
                modified_at=excluded.modified_at,
                size_bytes=excluded.size_bytes,
                is_valid=excluded.is_valid,
                updated_at=excluded.updated_at
        ''', (
            item.id, item.project_id, item.file_path, item.file_type, item.source,
            item.created_at, item.modified_at, max(int(item.size_bytes), 0),
            int(bool(item.is_valid)), now, now
        ))
        conn.commit()


def _row_to_result(row):
    data = {col: row[col] for col in RESULT_COLUMNS}
    data["is_valid"] = bool(data["is_valid"])
    return ScanResultItem(**data)


# ---------- QUERY ----------

LIKE_ESCAPE = "\\"


def escape_like(text):
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


class QueryBuilder:
    """Collects WHERE predicates and their bound parameters side by side."""

    def __init__(self):
        self.predicates = []
        self.params = []

    def equals(self, column, value):
        self.predicates.append(f"{column} = ?")
        self.params.append(value)
        return self

    def contains(self, column, text):
        # LIKE narrows using the index-friendly escaped pattern; instr keeps it case-sensitive
        self.predicates.append(f"({column} LIKE ? ESCAPE '{LIKE_ESCAPE}' AND instr({column}, ?) > 0)")
        self.params.extend([f"%{escape_like(text)}%", text])
        return self

    def one_of(self, column, values):
        values = list(values or [])
        if not values:
            return self
        placeholders = ", ".join("?" for _ in values)
        self.predicates.append(f"{column} IN ({placeholders})")
        self.params.extend(values)
        return self

    def where(self):
        if not self.predicates:
            return ""
        return " WHERE " + " AND ".join(self.predicates)


def _normalize_types(types):
    if not types:
        return []
    if isinstance(types, str):
        types = [types]
    out = []
    for t in types:
        if not isinstance(t, str):
            continue
        t = t.strip().lower().lstrip(".")
        if t and t not in out:
            out.append(t)
    return out


def query_results(project_id, page=1, page_size=20, text_filter=None, type_filter=None):
    """
    Page through a project's results, most recently updated first.

    page <= 0 is read as 1. page_size <= 0 returns every match as a single page.
    text_filter is a case-sensitive substring of file_path; type_filter is a list
    of extensions, empty meaning no restriction.
    """
    page = max(int(page or 0), 1)
    page_size = max(int(page_size or 0), 0)
    if page_size == 0:
        page = 1

    qb = QueryBuilder().equals("project_id", project_id)
    if text_filter:
        qb.contains("file_path", text_filter)
    qb.one_of("file_type", _normalize_types(type_filter))
    where = qb.where()

    with get_connection() as conn:
        total = conn.execute(f"SELECT COUNT(*) FROM scan_results{where}", qb.params).fetchone()[0]

        sql = f"SELECT * FROM scan_results{where} ORDER BY updated_at DESC, file_path ASC"
        params = list(qb.params)
        if page_size > 0:
            sql += " LIMIT ? OFFSET ?"
            params.extend([page_size, (page - 1) * page_size])
        rows = conn.execute(sql, params).fetchall()

    if page_size > 0:
        total_pages = (total + page_size - 1) // page_size
    else:
        total_pages = 1

    return {
        "items": [_row_to_result(r) for r in rows],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
    }


def count_results(project_id):
    with get_connection() as conn:
        return conn.execute(
            "SELECT COUNT(*) FROM scan_results WHERE project_id = ?", (project_id,)
        ).fetchone()[0]
