"""
Unit tests for Ingest component.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from src.components.dedupe import DedupeConfig, DedupeService, ShardedDedupeStore
from src.components.identity import VisitorHasher
from src.components.ingest import (
    Event,
    EventIngestor,
    IngestEventInput,
    InMemoryEventStore,
    InMemorySiteDirectory,
    RequestMetadata,
    UAClass,
    classify_user_agent,
    normalize_referrer,
    parse_browser,
    parse_device,
    run_ingest,
    validate_properties,
    validate_timestamp,
)
from src.components.realtime import InMemoryEventBuffer
from src.core.errors import UpstreamError

NOW = datetime(2026, 1, 12, 12, 0, 0, tzinfo=UTC)

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
IPAD_UA = (
    "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Safari/604.1"
)
EDGE_UA = CHROME_UA + " Edg/120.0.0.0"
FIREFOX_UA = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
ANDROID_UA = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
)


class FakeTimePort:
    def __init__(self, now: datetime = NOW) -> None:
        self._now = now

    def now_utc(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


class FailOnceStore(InMemoryEventStore):
    """Raises on the first append, then behaves."""

    def __init__(self) -> None:
        super().__init__()
        self.failed = False

    def append(self, event: Event) -> None:
        if not self.failed:
            self.failed = True
            raise UpstreamError("database is locked", code="store_unavailable")
        super().append(event)


@pytest.fixture
def time_port() -> FakeTimePort:
    return FakeTimePort()


@pytest.fixture
def store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def buffer() -> InMemoryEventBuffer:
    return InMemoryEventBuffer()


@pytest.fixture
def ingestor(
    time_port: FakeTimePort, store: InMemoryEventStore, buffer: InMemoryEventBuffer
) -> EventIngestor:
    return EventIngestor(
        hasher=VisitorHasher("test-secret", time_port=time_port),
        dedupe=DedupeService(
            store=ShardedDedupeStore(shard_count=4),
            time_port=time_port,
            config=DedupeConfig(window_seconds=5),
        ),
        event_store=store,
        buffer=buffer,
        time_port=time_port,
    )


def make_input(
    payload: dict[str, Any] | None = None,
    ip: str | None = "203.0.113.7",
    ua: str | None = CHROME_UA,
    site_id: str | None = "site_1",
) -> IngestEventInput:
    return IngestEventInput(
        site_id=site_id,
        payload=payload if payload is not None else {"type": "pageview", "path": "/pricing"},
        metadata=RequestMetadata(ip=ip, user_agent=ua, host="example.com", country="US"),
    )


class TestIngestPipeline:
    """accepted / duplicate / rejected."""

    def test_pageview_accepted(
        self,
        ingestor: EventIngestor,
        store: InMemoryEventStore,
        buffer: InMemoryEventBuffer,
    ) -> None:
        out = run_ingest(make_input(), ingestor=ingestor)

        assert out.status == "accepted"
        assert out.success is True
        assert out.event is not None
        assert out.event.path == "/pricing"
        assert out.event.device == "desktop"
        assert out.event.browser == "Chrome"
        assert out.event.country == "US"
        assert len(store.get_all()) == 1
        assert len(buffer.snapshot("site_1")) == 1

    def test_event_carries_no_raw_attributes(self, ingestor: EventIngestor) -> None:
        out = run_ingest(make_input(), ingestor=ingestor)
        assert out.event is not None
        text = repr(out.event)
        assert "203.0.113.7" not in text
        assert "Chrome/120" not in text
        assert len(out.event.fingerprint) == 16

    def test_replay_is_duplicate(
        self, ingestor: EventIngestor, store: InMemoryEventStore, time_port: FakeTimePort
    ) -> None:
        run_ingest(make_input(), ingestor=ingestor)
        time_port.advance(2)
        out = run_ingest(make_input(), ingestor=ingestor)

        assert out.status == "duplicate"
        assert out.success is True
        assert len(store.get_all()) == 1

    def test_replay_after_window_accepted(
        self, ingestor: EventIngestor, time_port: FakeTimePort
    ) -> None:
        run_ingest(make_input(), ingestor=ingestor)
        time_port.advance(6)
        assert run_ingest(make_input(), ingestor=ingestor).status == "accepted"

    def test_other_visitor_same_page_accepted(self, ingestor: EventIngestor) -> None:
        run_ingest(make_input(), ingestor=ingestor)
        out = run_ingest(make_input(ip="198.51.100.1"), ingestor=ingestor)
        assert out.status == "accepted"

    def test_racing_identical_events_single_accept(
        self, ingestor: EventIngestor, store: InMemoryEventStore
    ) -> None:
        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(lambda _: run_ingest(make_input(), ingestor=ingestor), range(32)))

        assert [o.status for o in outcomes].count("accepted") == 1
        assert len(store.get_all()) == 1

    def test_store_failure_does_not_poison_retry(
        self, time_port: FakeTimePort, buffer: InMemoryEventBuffer
    ) -> None:
        store = FailOnceStore()
        ingestor = EventIngestor(
            hasher=VisitorHasher("test-secret", time_port=time_port),
            dedupe=DedupeService(time_port=time_port, config=DedupeConfig(window_seconds=5)),
            event_store=store,
            buffer=buffer,
            time_port=time_port,
        )

        with pytest.raises(UpstreamError):
            run_ingest(make_input(), ingestor=ingestor)
        assert buffer.snapshot("site_1") == ()

        time_port.advance(1)
        assert run_ingest(make_input(), ingestor=ingestor).status == "accepted"
        assert len(store.get_all()) == 1
        time_port.advance(1)
        assert run_ingest(make_input(), ingestor=ingestor).status == "duplicate"

    def test_unregistered_site_rejected(
        self, time_port: FakeTimePort, store: InMemoryEventStore
    ) -> None:
        guarded = EventIngestor(
            hasher=VisitorHasher("test-secret", time_port=time_port),
            dedupe=DedupeService(time_port=time_port),
            event_store=store,
            buffer=InMemoryEventBuffer(),
            time_port=time_port,
            sites=InMemorySiteDirectory({"site_1"}),
        )
        out = run_ingest(make_input(site_id="no-such-site"), ingestor=guarded)
        assert out.status == "rejected"
        assert out.reason == "invalid_site"
        assert store.get_all() == []
        assert run_ingest(make_input(), ingestor=guarded).status == "accepted"

    def test_custom_event_requires_name(self, ingestor: EventIngestor) -> None:
        out = run_ingest(make_input({"type": "custom"}), ingestor=ingestor)
        assert out.status == "rejected"
        assert out.errors[0].code == "event_name_required"

    def test_custom_event_with_name_accepted(self, ingestor: EventIngestor) -> None:
        out = run_ingest(
            make_input({"type": "custom", "name": "signup", "properties": {"plan": "pro"}}),
            ingestor=ingestor,
        )
        assert out.status == "accepted"
        assert out.event is not None
        assert out.event.properties == {"plan": "pro"}

    def test_unknown_type_rejected(self, ingestor: EventIngestor) -> None:
        out = run_ingest(make_input({"type": "heartbeat"}), ingestor=ingestor)
        assert out.status == "rejected"
        assert out.errors[0].code == "invalid_event_type"

    def test_missing_site_rejected(self, ingestor: EventIngestor) -> None:
        out = run_ingest(make_input(site_id=None), ingestor=ingestor)
        assert out.status == "rejected"
        assert out.errors[0].field_name == "site_id"

    def test_unknown_field_rejected(self, ingestor: EventIngestor) -> None:
        out = run_ingest(make_input({"type": "pageview", "visitor": "x"}), ingestor=ingestor)
        assert out.status == "rejected"
        assert out.errors[0].code == "unknown_field"


class TestPrivacy:
    """PII and bot handling."""

    @pytest.mark.parametrize("field", ["ip", "ip_address", "user_agent", "email", "cookie"])
    def test_pii_field_rejected(self, ingestor: EventIngestor, field: str) -> None:
        out = run_ingest(make_input({"type": "pageview", field: "x"}), ingestor=ingestor)
        assert out.status == "rejected"
        assert out.reason == "forbidden_field"

    def test_bot_rejected(self, ingestor: EventIngestor, store: InMemoryEventStore) -> None:
        out = run_ingest(make_input(ua=GOOGLEBOT_UA), ingestor=ingestor)
        assert out.status == "rejected"
        assert out.reason == "bot_traffic"
        assert store.get_all() == []

    def test_errors_never_echo_connection_attributes(self, ingestor: EventIngestor) -> None:
        out = run_ingest(make_input({"type": "bogus"}), ingestor=ingestor)
        dumped = repr(out)
        assert "203.0.113.7" not in dumped
        assert "Chrome/120" not in dumped

    def test_no_connection_attributes_rejected(self, ingestor: EventIngestor) -> None:
        out = run_ingest(make_input(ip=None, ua=None), ingestor=ingestor)
        assert out.status == "rejected"
        assert out.reason == "missing_connection_attributes"


class TestProperties:
    """Bounded property bag."""

    def test_scalars_lists_and_flat_objects_accepted(self) -> None:
        props = {"a": 1, "b": "x", "c": [1, "two", None], "d": {"k": True}}
        clean, errors = validate_properties(props)
        assert errors == []
        assert clean == props

    def test_too_many_properties_rejected(self) -> None:
        _, errors = validate_properties({f"k{i}": i for i in range(21)})
        assert errors[0].code == "too_many_properties"

    def test_long_value_rejected(self) -> None:
        _, errors = validate_properties({"k": "x" * 501})
        assert errors[0].code == "property_value_too_long"

    def test_long_key_rejected(self) -> None:
        _, errors = validate_properties({"k" * 65: 1})
        assert errors[0].code == "invalid_property_key"

    def test_deep_nesting_rejected(self) -> None:
        _, errors = validate_properties({"k": {"inner": {"deeper": 1}}})
        assert errors[0].code == "invalid_property_value"

    def test_non_object_rejected(self) -> None:
        _, errors = validate_properties(["a"])
        assert errors[0].code == "invalid_properties"


class TestTimestamp:
    def test_missing_uses_server_time(self) -> None:
        ts, errors = validate_timestamp(None, NOW)
        assert ts == NOW
        assert errors == []

    def test_iso_string_parsed(self) -> None:
        ts, errors = validate_timestamp("2026-01-12T11:59:00Z", NOW)
        assert errors == []
        assert ts == NOW - timedelta(minutes=1)

    def test_unix_millis_parsed(self) -> None:
        ts, errors = validate_timestamp(NOW.timestamp() * 1000, NOW)
        assert errors == []
        assert ts == NOW

    def test_too_old_rejected(self) -> None:
        _, errors = validate_timestamp(NOW - timedelta(hours=1), NOW)
        assert errors[0].code == "timestamp_too_old"

    def test_future_rejected(self) -> None:
        _, errors = validate_timestamp(NOW + timedelta(minutes=5), NOW)
        assert errors[0].code == "timestamp_in_future"

    def test_garbage_rejected(self) -> None:
        _, errors = validate_timestamp("yesterday", NOW)
        assert errors[0].code == "invalid_timestamp"


class TestDimensions:
    """Derived device/browser/referrer."""

    def test_classify(self) -> None:
        assert classify_user_agent(GOOGLEBOT_UA) == UAClass.BOT
        assert classify_user_agent(CHROME_UA) == UAClass.REAL
        assert classify_user_agent(None) == UAClass.UNKNOWN
        assert classify_user_agent("curl/8.4.0") == UAClass.BOT

    def test_device(self) -> None:
        assert parse_device(CHROME_UA) == "desktop"
        assert parse_device(IPHONE_UA) == "mobile"
        assert parse_device(IPAD_UA) == "tablet"
        assert parse_device(ANDROID_UA) == "mobile"
        assert parse_device(None) == "desktop"

    def test_browser(self) -> None:
        assert parse_browser(CHROME_UA) == "Chrome"
        assert parse_browser(EDGE_UA) == "Edge"
        assert parse_browser(FIREFOX_UA) == "Firefox"
        assert parse_browser(IPHONE_UA) == "Safari"
        assert parse_browser(ANDROID_UA) == "Chrome"
        assert parse_browser("Lynx/2.8") == "Other"

    def test_referrer_reduced_to_host(self) -> None:
        assert normalize_referrer("https://www.google.com/search?q=x") == "google.com"

    def test_referrer_missing_is_direct(self) -> None:
        assert normalize_referrer(None) == "direct"
        assert normalize_referrer("") == "direct"

    def test_same_site_referrer_is_direct(self) -> None:
        assert normalize_referrer("https://example.com/blog", "www.example.com") == "direct"

    def test_payload_url_sets_path_and_site_host(self, ingestor: EventIngestor) -> None:
        out = run_ingest(
            make_input(
                {
                    "type": "pageview",
                    "url": "https://shop.test/cart?ref=1",
                    "referrer": "https://shop.test/home",
                }
            ),
            ingestor=ingestor,
        )
        assert out.event is not None
        assert out.event.path == "/cart"
        assert out.event.referrer == "direct"
