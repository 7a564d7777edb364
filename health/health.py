from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")


@dataclass
class SourceHealth:
    source: str
    last_fetch_at: str | None = None
    last_success_at: str | None = None
    last_error_at: str | None = None
    last_error: str | None = None
    last_status_code: int | None = None
    last_record_count: int = 0
    consecutive_failures: int = 0
    success_count: int = 0
    error_count: int = 0


class HealthRegistry:
    """Per-source fetch outcomes kept in memory for the health endpoint."""

    def __init__(self) -> None:
        self._sources: dict[str, SourceHealth] = {}

    def _entry(self, source: str) -> SourceHealth:
        return self._sources.setdefault(source, SourceHealth(source=source))

    def record_fetch_success(
        self, source: str, *, status_code: int | None, record_count: int
    ) -> None:
        now_iso = _utc_now_iso()
        entry = self._entry(source)
        entry.last_fetch_at = now_iso
        entry.last_success_at = now_iso
        entry.last_status_code = status_code
        entry.last_record_count = record_count
        entry.consecutive_failures = 0
        entry.last_error = None
        entry.success_count += 1

    def record_fetch_error(
        self, source: str, *, status_code: int | None, error: str
    ) -> None:
        now_iso = _utc_now_iso()
        entry = self._entry(source)
        entry.last_fetch_at = now_iso
        entry.last_error_at = now_iso
        entry.last_error = error
        if status_code is not None:
            entry.last_status_code = status_code
        entry.last_record_count = 0
        entry.consecutive_failures += 1
        entry.error_count += 1

    def get(self, source: str) -> SourceHealth | None:
        return self._sources.get(source)

    def snapshot(self) -> list[dict]:
        return [
            {
                "source": e.source,
                "last_fetch_at": e.last_fetch_at,
                "last_success_at": e.last_success_at,
                "last_error_at": e.last_error_at,
                "last_error": e.last_error,
                "last_status_code": e.last_status_code,
                "last_record_count": e.last_record_count,
                "consecutive_failures": e.consecutive_failures,
                "success_count": e.success_count,
                "error_count": e.error_count,
            }
            for e in sorted(self._sources.values(), key=lambda e: e.source)
        ]
