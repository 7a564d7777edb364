from __future__ import annotations

from datetime import UTC
from email.utils import parsedate_to_datetime

import feedparser


def _rfc822_to_iso(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return (
            parsedate_to_datetime(value)
            .astimezone(tz=UTC)
            .isoformat()
            .replace("+00:00", "Z")
        )
    except (TypeError, ValueError):
        # Atom-style feeds carry ISO 8601 already.
        return value


def parse_rss(data: bytes) -> list[dict]:
    parsed = feedparser.parse(data)
    if parsed.bozo and not parsed.entries:
        raise ValueError(f"unparsable feed: {parsed.get('bozo_exception')!r}")

    records: list[dict] = []
    for entry in parsed.entries:
        point = None
        georss_point = entry.get("georss_point")
        if georss_point:
            lat_str, lon_str = str(georss_point).split()
            point = (float(lat_str), float(lon_str))
        elif entry.get("geo_lat") and entry.get("geo_long"):
            point = (float(entry["geo_lat"]), float(entry["geo_long"]))

        content = None
        if "content" in entry and entry["content"]:
            content = entry["content"][0].get("value")

        records.append(
            {
                "id": entry.get("id") or entry.get("guid") or entry.get("link"),
                "link": entry.get("link"),
                "title": entry.get("title", ""),
                "summary": entry.get("summary", ""),
                "content": content,
                "published": _rfc822_to_iso(entry.get("published")),
                "updated": _rfc822_to_iso(entry.get("updated")),
                "point": point,
            }
        )
    return records
