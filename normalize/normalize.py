from __future__ import annotations

import html
import re
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from geo.places import extract_place, extract_topic, locate
from normalize.models import TOPICS, Event, RawRecord
from normalize.risk import classify_risk, coerce_risk, detect_change


ID_PREFIXES = {
    "official": "off",
    "social": "tw",
    "news": "news",
    "syndication": "rss",
}

ELLIPSIS = "..."

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

_TRACKING_PARAM_NAMES = {
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
    "mkt_tok",
}


class InvalidRecordError(ValueError):
    pass


def canonicalize_url(url: str) -> str:
    parts = urlsplit(url)
    kept_params: list[tuple[str, str]] = []
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        key_lower = key.casefold()
        if key_lower.startswith("utm_"):
            continue
        if key_lower in _TRACKING_PARAM_NAMES:
            continue
        kept_params.append((key, value))

    return urlunsplit(
        (
            parts.scheme,
            parts.netloc.casefold(),
            parts.path,
            urlencode(kept_params, doseq=True),
            "",
        )
    )


def parse_timestamp(value: object) -> datetime | None:
    """Parse ISO 8601 or RFC 2822 timestamps into aware UTC datetimes."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    try:
        if text.endswith("Z"):
            dt = datetime.fromisoformat(text.removesuffix("Z") + "+00:00")
        else:
            dt = datetime.fromisoformat(text)
    except ValueError:
        try:
            dt = parsedate_to_datetime(text)
        except (TypeError, ValueError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(tz=UTC)


def clean_text(value: str) -> str:
    text = html.unescape(_HTML_TAG_RE.sub(" ", value))
    return _WS_RE.sub(" ", text).strip()


def truncate_headline(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    cut = max(max_length - len(ELLIPSIS), 0)
    return text[:cut].rstrip() + ELLIPSIS


def normalize_record(record: RawRecord, *, headline_max_length: int) -> Event:
    timestamp = parse_timestamp(record.published)
    if timestamp is None:
        raise InvalidRecordError(
            f"unparsable timestamp {record.published!r} for "
            f"{record.source_type}:{record.external_id}"
        )
    if not isinstance(record.title, str) or not isinstance(record.body, str):
        raise InvalidRecordError(
            f"non-text title or body for {record.source_type}:{record.external_id}"
        )

    title = clean_text(record.title)
    body = clean_text(record.body)
    text = f"{title} {body}".strip()

    if record.risk is not None:
        risk = coerce_risk(record.risk)
    else:
        risk = classify_risk(text)

    topic = record.topic if record.topic in TOPICS else extract_topic(text)
    location = record.location or locate(extract_place(text))

    if record.change_flag is not None:
        change_flag = record.change_flag
    else:
        change_flag = detect_change(text)

    source_url = None
    if isinstance(record.url, str) and record.url:
        source_url = canonicalize_url(record.url)

    prefix = ID_PREFIXES.get(record.source_type, record.source_type)

    return Event(
        id=f"{prefix}_{record.external_id}",
        timestamp=timestamp,
        source_type=record.source_type,
        source_name=record.source_name,
        source_url=source_url,
        topic=topic,
        headline=truncate_headline(title or body, headline_max_length),
        summary=body or title,
        public_health_risk=risk,
        change_flag=change_flag,
        location=location,
    )
