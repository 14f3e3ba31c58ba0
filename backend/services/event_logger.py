"""Structured event emitter for turn and action telemetry."""
import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from config import EVENT_LOG_FILE

logger = logging.getLogger(__name__)

WARNING_EVENTS = {"turn_failed", "loop_exhausted"}


class EventLogger:
    """
    Emits named events with structured fields.

    Every event goes to the module logger with its fields attached as
    structured extras (picked up by logger.JSONFormatter). When a file path is
    configured, events are also appended to it in JSON Lines format.
    """

    def __init__(self, log_file_path: Optional[str] = EVENT_LOG_FILE):
        """
        Initialize the event logger.

        Args:
            log_file_path: Optional JSONL file receiving one line per event
        """
        self.log_file_path = log_file_path
        self._file = None
        self._lock = threading.Lock()

        if log_file_path:
            Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)
            self._file = open(log_file_path, "a", encoding="utf-8")
            logger.info(f"EventLogger writing to {log_file_path}")

    def emit(self, event: str, **fields: Any) -> Dict[str, Any]:
        """
        Record one event.

        Args:
            event: Event name, e.g. "action_executed"
            **fields: Structured fields attached to the event

        Returns:
            The event entry that was recorded
        """
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "event": event,
        }
        entry.update(fields)

        level = logging.WARNING if event in WARNING_EVENTS else logging.INFO
        logger.log(level, event, extra={"extra": entry})

        if self._file is not None:
            with self._lock:
                self._file.write(json.dumps(entry, default=str, ensure_ascii=False) + "\n")
                self._file.flush()

        return entry

    def close(self) -> None:
        """Close the event file if one is open."""
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None
