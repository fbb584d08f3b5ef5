# events.py
import logging
import threading

SCAN_LOG = "scan-log"
SCAN_PROGRESS = "scan-progress"
SCAN_DONE = "scan-done"


class EventLog:
    """
    Ordered event buffer for one scan.

    Every emitted event gets a sequence number starting at 1, is appended to the
    buffer and is pushed to subscribers. Polling clients read with since(seq).
    """

    def __init__(self):
        self._events = []
        self._subscribers = []
        self._lock = threading.Lock()

    def subscribe(self, callback):
        with self._lock:
            self._subscribers.append(callback)

    def emit(self, channel, payload):
        with self._lock:
            event = {"seq": len(self._events) + 1, "channel": channel, "payload": payload}
            self._events.append(event)
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(channel, payload)
            except Exception as e:
                logging.warning(f"Event subscriber failed on {channel}: {e}")
        return event

    def log(self, icon, text):
        return self.emit(SCAN_LOG, {"icon": icon, "text": text})

    def progress(self, pct):
        return self.emit(SCAN_PROGRESS, {"progress": int(pct)})

    def done(self, summary: dict):
        return self.emit(SCAN_DONE, summary)

    def since(self, seq=0):
        with self._lock:
            return [e for e in self._events if e["seq"] > seq]

    def channel(self, name):
        with self._lock:
            return [e["payload"] for e in self._events if e["channel"] == name]
