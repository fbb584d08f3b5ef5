# scanner.py
import os
import time

# Substring tokens checked against the path below the scan root.
IGNORE_TOKENS = [
    "node_modules", "target", ".git",
    "Library/Caches", "AppData/Local", "AppData/LocalLow", "AppData/Temp",
    ".DS_Store",
]

DOCUMENT_EXTS = {
    # text
    ".txt", ".md", ".markdown", ".rtf", ".log",
    # office
    ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".odt", ".ods", ".odp", ".pages", ".numbers", ".key", ".wps", ".et", ".dps",
    # pdf
    ".pdf",
    # structured data
    ".csv", ".tsv", ".json", ".xml", ".yaml", ".yml",
    # images
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".tif", ".tiff", ".heic", ".svg",
}

TIME_RANGE_DAYS = {
    "past_week": 7,
    "past_month": 30,
    "past_year": 365,
}

SECONDS_PER_DAY = 24 * 60 * 60


def _skip(_err):
    # unreadable dirs, vanished entries, broken links: keep walking
    return None


def _cancelled(cancel):
    return cancel is not None and cancel.is_set()


def _rel(root, path):
    rel = os.path.relpath(path, root)
    if rel == ".":
        return ""
    return rel.replace("\\", "/")


def is_ignored(rel_path):
    p = rel_path.replace("\\", "/")
    return any(tok in p for tok in IGNORE_TOKENS)


def is_document(path):
    return os.path.splitext(path)[1].lower() in DOCUMENT_EXTS


def file_type_of(path):
    return os.path.splitext(path)[1].lower().lstrip(".")


def passes_time_range(mtime, time_range, now=None):
    """Age check against now. Unknown labels and unknown mtimes pass."""
    days = TIME_RANGE_DAYS.get(time_range)
    if days is None or mtime is None:
        return True
    now = time.time() if now is None else now
    return now - mtime <= days * SECONDS_PER_DAY


def iter_candidates(root, time_range=None, now=None, cancel=None):
    """
    Lazily yield (path, stat_result or None) for every candidate document under root.

    Ignored directories are pruned, not descended. stat_result is None when the
    file's metadata could not be read; such files still pass the time filter.
    """
    if not os.path.exists(root):
        return
    for dirpath, dirnames, filenames in os.walk(root, onerror=_skip):
        if _cancelled(cancel):
            return
        rel_dir = _rel(root, dirpath)
        dirnames[:] = [
            d for d in dirnames
            if not is_ignored(f"{rel_dir}/{d}" if rel_dir else d)
        ]
        for name in filenames:
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if is_ignored(rel) or not is_document(name):
                continue
            path = os.path.join(dirpath, name)
            try:
                st = os.stat(path)
            except OSError:
                st = None
            if st is not None and not passes_time_range(st.st_mtime, time_range, now):
                continue
            yield path, st


def count_documents(root, time_range=None, now=None, cancel=None):
    return sum(1 for _ in iter_candidates(root, time_range, now, cancel))


def is_git_repo(path):
    git_dir = os.path.join(path, ".git")
    return (
        os.path.isfile(os.path.join(git_dir, "HEAD"))
        and os.path.isdir(os.path.join(git_dir, "objects"))
        and os.path.isdir(os.path.join(git_dir, "refs"))
    )


def iter_git_repos(root, cancel=None):
    """Yield each repository root found under root. No ignore pruning here."""
    if not os.path.exists(root):
        return
    for dirpath, dirnames, _filenames in os.walk(root, onerror=_skip):
        if _cancelled(cancel):
            return
        if ".git" in dirnames and is_git_repo(dirpath):
            yield dirpath
