from datetime import UTC, datetime

import pytest

from normalize.models import Location, RawRecord
from normalize.normalize import (
    InvalidRecordError,
    canonicalize_url,
    normalize_record,
    parse_timestamp,
    truncate_headline,
)


def _tweet(text: str, **overrides) -> RawRecord:
    fields = {
        "source_type": "social",
        "source_name": "Twitter/@PC_Sonora",
        "external_id": "1790000000000000001",
        "published": "2024-07-15T18:30:00.000Z",
        "title": text,
        "body": text,
        "url": "https://twitter.com/PC_Sonora/status/1790000000000000001",
    }
    fields.update(overrides)
    return RawRecord(**fields)


def test_keyword_record_is_classified_from_text() -> None:
    event = normalize_record(
        _tweet("Alerta por tormenta en Guaymas, actualización 18:00"),
        headline_max_length=80,
    )
    assert event.id == "tw_1790000000000000001"
    assert event.timestamp == datetime(2024, 7, 15, 18, 30, tzinfo=UTC)
    assert event.public_health_risk == "medium"
    assert event.topic == "floods"
    assert event.change_flag is True
    assert event.location == Location(area="Guaymas", lat=27.9179, lng=-110.8989)


def test_supplied_canonical_fields_are_copied() -> None:
    location = Location(area="Norte de Sonora", lat=29.1056, lng=-110.9428)
    record = RawRecord(
        source_type="official",
        source_name="Protección Civil Sonora",
        external_id="pc_001",
        published="2024-07-15T12:00:00+00:00",
        title="Reporte sin palabras clave",
        body="Texto",
        topic="floods",
        risk="high",
        change_flag=False,
        location=location,
    )
    event = normalize_record(record, headline_max_length=50)
    assert event.id == "off_pc_001"
    assert event.public_health_risk == "high"
    assert event.topic == "floods"
    assert event.change_flag is False
    assert event.location is location


def test_unrecognized_supplied_values() -> None:
    record = _tweet("Reunión informativa", risk="severe", topic="clima")
    event = normalize_record(record, headline_max_length=50)
    assert event.public_health_risk == "medium"
    assert event.topic == "general"


def test_unparsable_timestamp_is_rejected() -> None:
    with pytest.raises(InvalidRecordError):
        normalize_record(_tweet("hola", published="ayer"), headline_max_length=50)
    with pytest.raises(InvalidRecordError):
        normalize_record(_tweet("hola", published=None), headline_max_length=50)


def test_headline_truncation() -> None:
    text = "x" * 60
    assert truncate_headline(text, 50) == "x" * 47 + "..."
    assert len(truncate_headline(text, 50)) == 50
    assert truncate_headline("corto", 50) == "corto"
    assert truncate_headline("y" * 50, 50) == "y" * 50


def test_headline_uses_configured_limit() -> None:
    text = "Cierre parcial de la carretera federal 15 por trabajos de mantenimiento"
    short = normalize_record(_tweet(text), headline_max_length=50)
    long = normalize_record(_tweet(text), headline_max_length=80)
    assert short.headline.endswith("...")
    assert len(short.headline) <= 50
    assert long.headline == text
    assert short.summary == text


def test_normalizer_is_idempotent() -> None:
    record = _tweet("Sismo sacude Hermosillo; sin daños reportados")
    assert normalize_record(record, headline_max_length=50) == normalize_record(
        record, headline_max_length=50
    )


def test_empty_text_record_falls_back() -> None:
    event = normalize_record(_tweet(""), headline_max_length=50)
    assert event.topic == "general"
    assert event.location is not None
    assert event.location.area == "Sonora"
    assert event.public_health_risk == "low"


def test_html_is_stripped_from_text() -> None:
    event = normalize_record(
        _tweet("<b>Incendio</b> en&nbsp;Caborca", body="<p>Bomberos en sitio</p>"),
        headline_max_length=50,
    )
    assert event.headline == "Incendio en Caborca"
    assert event.summary == "Bomberos en sitio"


def test_parse_timestamp_formats() -> None:
    expected = datetime(2024, 7, 15, 18, 30, tzinfo=UTC)
    assert parse_timestamp("2024-07-15T18:30:00Z") == expected
    assert parse_timestamp("2024-07-15T11:30:00-07:00") == expected
    assert parse_timestamp("Mon, 15 Jul 2024 18:30:00 GMT") == expected
    assert parse_timestamp("2024-07-15T18:30:00") == expected
    assert parse_timestamp("not a date") is None


def test_canonicalize_url_strips_tracking() -> None:
    url = "https://Example.com/path?a=1&utm_source=x&fbclid=y#frag"
    assert canonicalize_url(url) == "https://example.com/path?a=1"


def test_non_string_fields_are_rejected() -> None:
    with pytest.raises(InvalidRecordError):
        normalize_record(_tweet("hola", published=1721066400), headline_max_length=50)
    with pytest.raises(InvalidRecordError):
        normalize_record(_tweet("hola", title=None), headline_max_length=50)
    assert parse_timestamp(1721066400) is None


def test_non_string_url_is_ignored() -> None:
    event = normalize_record(_tweet("hola", url=123), headline_max_length=50)
    assert event.source_url is None
