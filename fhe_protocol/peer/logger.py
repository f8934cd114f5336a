"""JSONL event logger for protocol activity"""

from __future__ import annotations

import json
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import get


class EventLogger:
    """Append-only protocol event log.

    Every event carries a timestamp and a monotonic `sequence`. Events are
    kept in a bounded in-memory buffer and, when an output file is given,
    appended to it as one JSON object per line.

    Event types written by the protocol:
    - keys_published: set_fhe_keys was broadcast
    - age_submitted: submit_age was broadcast
    - fallback_manual: a command was handed to the operator instead
    - tx_executed / tx_rejected: local contract execution outcome
    """

    output_path: Path | None
    _sequence: int
    _buffer: deque[dict[str, Any]]

    def __init__(self, output_file: str | None = None, buffer_size: int = 1000) -> None:
        """Initialize the event logger.

        Args:
            output_file: JSONL path; None keeps events in memory only.
                The file is truncated on init (one file per session).
            buffer_size: Number of events retained for recent()
        """
        self._sequence = 0
        self._buffer = deque(maxlen=buffer_size)
        if output_file:
            self.output_path = Path(output_file)
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            self.output_path.write_text("")
        else:
            self.output_path = None

    @classmethod
    def from_config(cls) -> EventLogger:
        return cls(output_file=get("logging.output_file"))

    @property
    def sequence(self) -> int:
        return self._sequence

    def log(self, event_type: str, data: dict[str, Any]) -> None:
        """Record an event."""
        self._sequence += 1
        event: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "sequence": self._sequence,
            "event_type": event_type,
            **data,
        }
        self._buffer.append(event)
        if self.output_path is not None:
            with open(self.output_path, "a") as f:
                f.write(json.dumps(event) + "\n")

    def recent(self, n: int | None = None, event_type: str | None = None) -> list[dict[str, Any]]:
        """Most recent events, oldest first."""
        limit: int = n if n is not None else (get("logging.default_recent") or 50)
        events = [e for e in self._buffer if event_type is None or e["event_type"] == event_type]
        return events[-limit:] if limit > 0 else []
