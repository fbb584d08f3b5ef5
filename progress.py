# progress.py
import threading

CHAT_DETECTED = 18
WALK_CEILING = 60
DOCUMENTS_COUNTED = 84
CATALOG_CEILING = 95
COMPLETE = 100


def summary_walk_progress(done, total):
    """Root-walk band of the summary scan: 18 → 60."""
    span = WALK_CEILING - CHAT_DETECTED
    pct = CHAT_DETECTED + int(done / max(total, 1) * span)
    return min(pct, WALK_CEILING)


def catalog_progress(done, total):
    """Catalog scan: 0 → 95 across roots, 100 is sent after persistence."""
    if total <= 0:
        return CATALOG_CEILING
    return min(int(done / total * CATALOG_CEILING), CATALOG_CEILING)


class ProgressTracker:
    """Forwards percentages to emit() and drops any that would go backwards."""

    def __init__(self, emit):
        self._emit = emit
        self._last = -1
        self._lock = threading.Lock()

    @property
    def last(self):
        return max(self._last, 0)

    def report(self, pct):
        pct = max(0, min(int(pct), COMPLETE))
        with self._lock:
            if pct < self._last:
                return False
            self._last = pct
        self._emit(pct)
        return True
