# config.py
import os

# 🔍 Paths
DB_PATH = os.environ.get("SCANNER_DB_PATH", "scanner_catalog.db")
LOG_FILE = os.environ.get("SCANNER_LOG_FILE", "project_scanner.log")
PROJECTS_DIR = os.environ.get(
    "SCANNER_PROJECTS_DIR",
    os.path.join(os.path.expanduser("~"), "ProjectScanner", "projects"),
)

# 🌐 Server
API_HOST = os.environ.get("SCANNER_HOST", "127.0.0.1")
API_PORT = int(os.environ.get("SCANNER_PORT", "5000"))
API_URL = os.environ.get("SCANNER_API_URL", f"http://{API_HOST}:{API_PORT}/task")

# ⚙️ Scanning
DOC_COUNT_WORKERS = int(os.environ.get("SCANNER_DOC_WORKERS", "4"))
DEV = os.environ.get("DEV", "") == "true"

DEFAULT_PAGE_SIZE = 20
MAX_FINISHED_JOBS = int(os.environ.get("SCANNER_MAX_FINISHED_JOBS", "50"))
