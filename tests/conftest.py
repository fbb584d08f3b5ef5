"""
Pytest configuration for the project scanner test suite.

Points the catalog and the log file at temporary locations before any
project module is imported.
"""
import os
import sys
import tempfile
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

os.environ.setdefault("SCANNER_LOG_FILE", os.path.join(tempfile.gettempdir(), "project_scanner_test.log"))
os.environ.setdefault("SCANNER_DB_PATH", os.path.join(tempfile.gettempdir(), "project_scanner_test.db"))
os.environ.setdefault("SCANNER_PROJECTS_DIR", os.path.join(tempfile.gettempdir(), "project_scanner_test_projects"))

import pytest

import db


@pytest.fixture
def catalog(tmp_path, monkeypatch):
    """Fresh, initialised catalog database per test."""
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "catalog.db"))
    db.init_db()
    return db


def make_file(path, age_days=0, content="x", now=None):
    """Create a file whose mtime is age_days in the past."""
    import time
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    ts = (now if now is not None else time.time()) - age_days * 24 * 60 * 60
    os.utime(path, (ts, ts))
    return path


def make_repo(path):
    """Minimal on-disk git repository layout."""
    git_dir = Path(path) / ".git"
    (git_dir / "objects").mkdir(parents=True, exist_ok=True)
    (git_dir / "refs" / "heads").mkdir(parents=True, exist_ok=True)
    (git_dir / "HEAD").write_text("ref: refs/heads/main\n")
    return Path(path)
