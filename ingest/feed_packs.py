from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


@dataclass(frozen=True)
class FeedPackEntry:
    feed_id: str
    name: str
    url: str
    enabled: bool


def load_feed_pack_entries(feeds_dir: Path) -> dict[str, list[FeedPackEntry]]:
    packs: dict[str, list[FeedPackEntry]] = {}
    if not feeds_dir.exists():
        return packs

    for path in sorted(feeds_dir.glob("*.yaml")):
        pack_id = path.stem
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        if raw is None:
            packs[pack_id] = []
            continue
        if not isinstance(raw, list):
            raise ValueError(f"invalid feed pack: {path}")

        entries: list[FeedPackEntry] = []
        for entry in raw:
            if not isinstance(entry, dict):
                raise ValueError(f"invalid feed entry in: {path}")
            entries.append(
                FeedPackEntry(
                    feed_id=str(entry["id"]),
                    name=str(entry["name"]),
                    url=str(entry["url"]),
                    enabled=bool(entry.get("enabled", True)),
                )
            )

        packs[pack_id] = entries

    return packs


def enabled_feeds(feeds_dir: Path) -> list[FeedPackEntry]:
    return [
        entry
        for entries in load_feed_pack_entries(feeds_dir).values()
        for entry in entries
        if entry.enabled
    ]
