"""
Vigil — Structured Audit Logger
===============================
Logs every liveness decision (presence changes, challenge starts and
completions, session outcome) in structured JSONL format for
post-session review.

Key Features:
  - JSONL (Newline Delimited JSON) format
  - Thread-safe logging (buffered writes)
  - Levels: AUDIT, WARN, ERROR, SYSTEM
  - NumPy-aware serialization (landmark arrays, numpy scalars)
  - Write failures are reported on the console, never raised into
    frame processing
"""

import json
import logging
import os
import sys
import threading
import time
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np

# Configure standard logger to console
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

_log = logging.getLogger("VigilLogger")


class VigilJSONEncoder(json.JSONEncoder):
    """Handles NumPy, Enum and snapshot types for JSON serialization."""
    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, Enum):
            return obj.value
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        return super().default(obj)


class VigilLogger:
    """
    Append-only JSONL audit log for one or more liveness sessions.
    """

    def __init__(self, log_dir: str = "logs", filename: str = "vigil_audit.jsonl"):
        self.log_dir = log_dir
        os.makedirs(self.log_dir, exist_ok=True)

        self.log_path = os.path.join(self.log_dir, filename)
        self._file = open(self.log_path, "a", encoding="utf-8")
        self._lock = threading.Lock()

        self.log({
            "event": "system_startup",
            "python_version": sys.version,
            "platform": sys.platform
        }, level="SYSTEM")

    def log(self, data: Dict[str, Any], level: str = "AUDIT", event: Optional[str] = None):
        """Append log entry."""
        entry = {
            "timestamp": time.time(),
            "level": level,
            "event": event or data.get("event", "unknown"),
            "data": data
        }

        try:
            line = json.dumps(entry, cls=VigilJSONEncoder) + "\n"
        except (TypeError, ValueError) as e:
            _log.error("Unserializable audit entry %r: %s", entry["event"], e)
            return

        with self._lock:
            if self._file.closed:
                return
            try:
                self._file.write(line)
                self._file.flush()
            except OSError as e:
                _log.error("Audit write failed: %s", e)

    def log_event(self, event: str, **fields):
        """Helper for session decision events."""
        self.log(dict(fields, event=event), level="AUDIT", event=event)

    def warn(self, message: str, context: Optional[Dict] = None):
        """Log structured warning."""
        _log.warning(message)
        self.log({"message": message, "context": context}, level="WARN", event="system_warning")

    def error(self, message: str, exception: Optional[Exception] = None):
        """Log structured error with exception details."""
        _log.error(message)
        err_details = str(exception) if exception else None
        self.log({"message": message, "exception": err_details}, level="ERROR", event="system_error")

    @property
    def closed(self) -> bool:
        return self._file.closed

    def close(self):
        """Clean shutdown."""
        if self._file.closed:
            return
        self.log({"message": "Logger shutting down"}, level="SYSTEM", event="system_shutdown")
        with self._lock:
            self._file.close()

    def __enter__(self) -> "VigilLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


# Use singleton if simple access needed
_logger = None


def get_logger(log_dir="logs", filename="vigil_audit.jsonl"):
    global _logger
    if _logger is None or _logger.closed:
        _logger = VigilLogger(log_dir, filename)
    return _logger
