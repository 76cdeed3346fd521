"""Lifetime counters for the terminal."""

from __future__ import annotations

import threading
import time


class StatsManager:
    """
    Counts what the terminal has seen and sent since startup.

    Tracks:
    - Inbound messages, malformed payloads, acknowledgment traffic
    - Acknowledgments sent and failed
    - Authorization denials
    - Commands dispatched, failed and rejected by the parser
    - Replies sent
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "msgs_in": 0,
            "msgs_bad": 0,
            "acks_in": 0,
            "group_ignored": 0,
            "acks_sent": 0,
            "acks_failed": 0,
            "denied": 0,
            "commands": 0,
            "command_errors": 0,
            "parse_errors": 0,
            "profiles_sent": 0,
            "replies_sent": 0,
            "internal_errors": 0,
        }

    def set_start_time(self) -> None:
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return self._counters.get(key, 0)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def uptime_s(self) -> float:
        if self.started_monotonic is None:
            return 0.0
        return max(0.0, time.monotonic() - self.started_monotonic)

    def format_stats(self) -> str:
        from . import __version__

        up = int(self.uptime_s())
        days, rem = divmod(up, 86400)
        hours, rem = divmod(rem, 3600)
        minutes, seconds = divmod(rem, 60)

        lines = [f"rnsterm {__version__} stats"]
        if days:
            lines.append(f"uptime: {days}d {hours:02d}:{minutes:02d}:{seconds:02d}")
        else:
            lines.append(f"uptime: {hours:02d}:{minutes:02d}:{seconds:02d}")
        for key, value in self.snapshot().items():
            lines.append(f"{key}: {value}")
        return "\n".join(lines)
