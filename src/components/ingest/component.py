"""
Ingest component - Event collection pipeline.

raw request -> site check -> validate -> bot check -> fingerprint -> dedupe ->
{durable store, realtime buffer}

Invariants:
- Raw IP / user agent are used for hashing and classification only, then dropped
- PII fields in the payload are rejected outright
- Properties are a bounded map of scalar / list / flat-dict values
- A duplicate is a successful no-op, not an error
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit

from src.components.dedupe import DedupeInput, DedupeService
from src.components.identity import FingerprintInput, VisitorHasher, run_fingerprint
from src.components.realtime import EventBufferPort, RealtimeEvent

from ._useragent import is_bot, parse_browser, parse_device
from .models import (
    Event,
    IngestConfig,
    IngestEventInput,
    IngestOutput,
    IngestValidationError,
    PropertyValue,
    RequestMetadata,
)
from .ports import EventStorePort, SiteDirectoryPort, TimePort

DEFAULT_CONFIG = IngestConfig()

DIRECT_REFERRER = "direct"
DEFAULT_PATH = "/"
MAX_DIMENSION_LENGTH = 64

_SCALAR_TYPES = (str, int, float, bool, type(None))


# --- Validation Functions ---


def validate_site_id(site_id: str | None) -> list[IngestValidationError]:
    if not site_id or not site_id.strip():
        return [
            IngestValidationError(
                code="site_id_required",
                message="Site ID is required",
                field_name="site_id",
            )
        ]
    return []


def validate_forbidden_fields(
    payload: dict[str, Any],
    config: IngestConfig = DEFAULT_CONFIG,
) -> list[IngestValidationError]:
    """Reject payload fields that carry PII."""
    return [
        IngestValidationError(
            code="forbidden_field",
            message=f"Field '{name}' is not allowed (PII)",
            field_name=name,
        )
        for name in sorted(config.forbidden_fields)
        if name in payload
    ]


def validate_allowed_fields(
    payload: dict[str, Any],
    config: IngestConfig = DEFAULT_CONFIG,
) -> list[IngestValidationError]:
    return [
        IngestValidationError(
            code="unknown_field",
            message=f"Field '{name}' is not recognized",
            field_name=name,
        )
        for name in payload
        if name not in config.allowed_fields and name not in config.forbidden_fields
    ]


def validate_event_type(
    event_type: Any,
    name: Any,
    config: IngestConfig = DEFAULT_CONFIG,
) -> list[IngestValidationError]:
    """Type must be allowed; custom events need a name."""
    errors: list[IngestValidationError] = []

    if not event_type:
        errors.append(
            IngestValidationError(
                code="event_type_required",
                message="Event type is required",
                field_name="type",
            )
        )
        return errors

    if event_type not in config.allowed_types:
        errors.append(
            IngestValidationError(
                code="invalid_event_type",
                message=f"Event type '{event_type}' is not allowed",
                field_name="type",
            )
        )
        return errors

    if name is not None and (not isinstance(name, str) or len(name) > config.max_name_length):
        errors.append(
            IngestValidationError(
                code="invalid_event_name",
                message=f"Event name must be a string of at most {config.max_name_length} chars",
                field_name="name",
            )
        )
    elif event_type == "custom" and not (name and name.strip()):
        errors.append(
            IngestValidationError(
                code="event_name_required",
                message="Custom events require a name",
                field_name="name",
            )
        )

    return errors


def normalize_path(
    payload: dict[str, Any],
    config: IngestConfig = DEFAULT_CONFIG,
) -> tuple[str, list[IngestValidationError]]:
    """Path from `path`, or the path part of `url`. Query and fragment dropped."""
    raw = payload.get("path")
    if raw is None and payload.get("url") is not None:
        raw = urlsplit(str(payload["url"])).path or DEFAULT_PATH
    if raw is None:
        return DEFAULT_PATH, []

    if not isinstance(raw, str):
        return DEFAULT_PATH, [
            IngestValidationError(
                code="invalid_path",
                message="Path must be a string",
                field_name="path",
            )
        ]

    path = urlsplit(raw).path if "?" in raw or "#" in raw else raw
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > config.max_path_length:
        return DEFAULT_PATH, [
            IngestValidationError(
                code="path_too_long",
                message=f"Path exceeds {config.max_path_length} characters",
                field_name="path",
            )
        ]
    return path, []


def _property_error(code: str, message: str, key: str | None = None) -> IngestValidationError:
    return IngestValidationError(
        code=code,
        message=message,
        field_name=f"properties.{key}" if key else "properties",
    )


def _check_scalar(value: Any, key: str, config: IngestConfig) -> IngestValidationError | None:
    if not isinstance(value, _SCALAR_TYPES):
        return _property_error(
            "invalid_property_value",
            "Property values must be scalars, lists of scalars, or flat objects",
            key,
        )
    if isinstance(value, str) and len(value) > config.max_property_value_length:
        return _property_error(
            "property_value_too_long",
            f"Property value exceeds {config.max_property_value_length} characters",
            key,
        )
    return None


def validate_properties(
    properties: Any,
    config: IngestConfig = DEFAULT_CONFIG,
) -> tuple[dict[str, PropertyValue], list[IngestValidationError]]:
    """
    Validate the property bag.

    Oversized bags are rejected, never truncated.
    """
    if properties is None:
        return {}, []
    if not isinstance(properties, dict):
        return {}, [_property_error("invalid_properties", "Properties must be an object")]
    if len(properties) > config.max_properties:
        return {}, [
            _property_error(
                "too_many_properties",
                f"At most {config.max_properties} properties are allowed",
            )
        ]

    errors: list[IngestValidationError] = []
    for key, value in properties.items():
        if not isinstance(key, str) or not key or len(key) > config.max_property_key_length:
            errors.append(
                _property_error(
                    "invalid_property_key",
                    f"Property keys must be 1-{config.max_property_key_length} characters",
                )
            )
            continue

        if isinstance(value, list):
            if len(value) > config.max_properties:
                errors.append(
                    _property_error("property_value_too_long", "Property list is too long", key)
                )
                continue
            children = value
        elif isinstance(value, dict):
            if len(value) > config.max_properties or not all(
                isinstance(k, str) and len(k) <= config.max_property_key_length for k in value
            ):
                errors.append(
                    _property_error("invalid_property_value", "Nested object is too large", key)
                )
                continue
            children = list(value.values())
        else:
            children = [value]

        for child in children:
            error = _check_scalar(child, key, config)
            if error:
                errors.append(error)
                break

    if errors:
        return {}, errors
    return dict(properties), []


def validate_timestamp(
    ts: Any,
    now: datetime,
    config: IngestConfig = DEFAULT_CONFIG,
) -> tuple[datetime | None, list[IngestValidationError]]:
    """Parse an optional client timestamp; the server clock is the default."""
    if ts is None:
        return now, []

    parsed: datetime | None = None
    if isinstance(ts, datetime):
        parsed = ts
    elif isinstance(ts, str):
        try:
            parsed = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        except ValueError:
            pass
    elif isinstance(ts, (int, float)) and not isinstance(ts, bool):
        try:
            # Milliseconds when implausibly large for seconds
            parsed = datetime.fromtimestamp(ts / 1000 if ts > 1e12 else ts, tz=UTC)
        except (ValueError, OSError, OverflowError):
            pass

    if parsed is None:
        return None, [
            IngestValidationError(
                code="invalid_timestamp",
                message="Timestamp must be ISO 8601 or Unix time",
                field_name="ts",
            )
        ]

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)

    age = (now - parsed).total_seconds()
    if age > config.max_timestamp_age_seconds:
        return None, [
            IngestValidationError(
                code="timestamp_too_old",
                message=f"Timestamp is too old (max {config.max_timestamp_age_seconds}s)",
                field_name="ts",
            )
        ]
    if age < -config.max_timestamp_future_seconds:
        return None, [
            IngestValidationError(
                code="timestamp_in_future",
                message=f"Timestamp is too far in future (max {config.max_timestamp_future_seconds}s)",
                field_name="ts",
            )
        ]
    return parsed.astimezone(UTC), []


# --- Dimension Normalisation ---


def _host_of(value: str) -> str:
    host = urlsplit(value if "//" in value else f"//{value}").hostname or ""
    return host.removeprefix("www.")


def normalize_referrer(referrer: Any, site_host: str | None = None) -> str:
    """
    Reduce a referrer to its host.

    Missing, unparseable, or same-site referrers count as direct traffic.
    """
    if not referrer or not isinstance(referrer, str):
        return DIRECT_REFERRER
    host = _host_of(referrer.strip())
    if not host:
        return DIRECT_REFERRER
    if site_host and host == _host_of(site_host):
        return DIRECT_REFERRER
    return host.lower()


def site_host_for(payload: dict[str, Any], metadata: RequestMetadata) -> str | None:
    """Host of the tracked page when known, else the request host."""
    url = payload.get("url")
    if isinstance(url, str) and "//" in url:
        host = urlsplit(url).hostname
        if host:
            return host
    return metadata.host


def _clean_dimension(value: Any) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()[:MAX_DIMENSION_LENGTH]


# --- Ingestion Service (Shell) ---


class _SystemTime:
    def now_utc(self) -> datetime:
        return datetime.now(UTC)


def _rejected(reason: str, errors: list[IngestValidationError]) -> IngestOutput:
    return IngestOutput(status="rejected", reason=reason, errors=errors, success=False)


class EventIngestor:
    """
    Event ingestion pipeline.

    Holds only references to the shared hasher, dedupe service, store, and
    realtime buffer; safe to share across request handlers.
    """

    def __init__(
        self,
        hasher: VisitorHasher,
        dedupe: DedupeService,
        event_store: EventStorePort,
        buffer: EventBufferPort,
        time_port: TimePort | None = None,
        config: IngestConfig | None = None,
        sites: SiteDirectoryPort | None = None,
    ) -> None:
        self._hasher = hasher
        self._dedupe = dedupe
        self._store = event_store
        self._buffer = buffer
        self._time = time_port or _SystemTime()
        self._config = config or DEFAULT_CONFIG
        # None accepts any site id
        self._sites = sites

    def _validate(
        self,
        payload: dict[str, Any],
        now: datetime,
    ) -> tuple[dict[str, Any], list[IngestValidationError]]:
        config = self._config
        errors: list[IngestValidationError] = []

        errors.extend(validate_allowed_fields(payload, config))
        errors.extend(validate_event_type(payload.get("type"), payload.get("name"), config))

        path, path_errors = normalize_path(payload, config)
        errors.extend(path_errors)

        properties, prop_errors = validate_properties(payload.get("properties"), config)
        errors.extend(prop_errors)

        ts, ts_errors = validate_timestamp(payload.get("ts"), now, config)
        errors.extend(ts_errors)

        session_id = payload.get("session_id")
        if session_id is not None and (not isinstance(session_id, str) or len(session_id) > 128):
            errors.append(
                IngestValidationError(
                    code="invalid_session_id",
                    message="Session ID must be a string of at most 128 characters",
                    field_name="session_id",
                )
            )

        return {
            "path": path,
            "properties": properties,
            "timestamp": ts or now,
        }, errors

    def ingest(self, inp: IngestEventInput) -> IngestOutput:
        """Returns accepted, duplicate, or rejected(reason)."""
        config = self._config
        payload = inp.payload if isinstance(inp.payload, dict) else {}
        meta = inp.metadata or RequestMetadata()

        errors = validate_site_id(inp.site_id)
        if not isinstance(inp.payload, dict):
            errors.append(
                IngestValidationError(code="invalid_payload", message="Payload must be an object")
            )
        if errors:
            return _rejected("validation_error", errors)
        assert inp.site_id is not None

        if self._sites is not None and not self._sites.site_exists(inp.site_id):
            return _rejected(
                "invalid_site",
                [
                    IngestValidationError(
                        code="invalid_site", message="Unknown site ID", field_name="site_id"
                    )
                ],
            )

        # PII present: reject before looking at the rest of the payload
        pii_errors = validate_forbidden_fields(payload, config)
        if pii_errors:
            return _rejected("forbidden_field", pii_errors)

        if config.reject_bots and is_bot(meta.user_agent):
            return _rejected(
                "bot_traffic",
                [IngestValidationError(code="bot_traffic", message="Automated traffic is not counted")],
            )

        now = self._time.now_utc()
        fields, errors = self._validate(payload, now)
        if errors:
            return _rejected("validation_error", errors)

        identity = run_fingerprint(
            FingerprintInput(ip=meta.ip, user_agent=meta.user_agent),
            hasher=self._hasher,
        )
        if not identity.success or identity.fingerprint is None:
            return _rejected(
                "missing_connection_attributes",
                [
                    IngestValidationError(code=e.code, message=e.message, field_name=e.field_name)
                    for e in identity.errors
                ],
            )

        event = Event(
            site_id=inp.site_id,
            fingerprint=identity.fingerprint,
            type=payload["type"],
            name=payload.get("name"),
            path=fields["path"],
            timestamp=fields["timestamp"],
            session_id=payload.get("session_id"),
            properties=fields["properties"],
            country=_clean_dimension(payload.get("country") or meta.country),
            device=_clean_dimension(payload.get("device")) or parse_device(meta.user_agent),
            browser=_clean_dimension(payload.get("browser")) or parse_browser(meta.user_agent),
            referrer=normalize_referrer(payload.get("referrer"), site_host_for(payload, meta)),
        )

        dedupe = self._dedupe.check_and_record(
            DedupeInput(
                site_id=event.site_id,
                fingerprint=event.fingerprint,
                event_type=event.type,
                timestamp=event.timestamp,
                path=event.path,
                name=event.name,
            ),
            now,
        )
        if dedupe.is_duplicate:
            return IngestOutput(status="duplicate")

        try:
            self._store.append(event)
        except Exception:
            # Not stored, so a retry must not be seen as a duplicate
            self._dedupe.forget(dedupe.dedupe_key, now)
            raise

        self._buffer.append(
            RealtimeEvent(
                site_id=event.site_id,
                fingerprint=event.fingerprint,
                timestamp=event.timestamp,
                path=event.path,
                event_type=event.type,
                name=event.name,
                country=event.country,
                device=event.device,
            )
        )
        return IngestOutput(status="accepted", event=event)


def create_event_ingestor(
    hasher: VisitorHasher,
    dedupe: DedupeService,
    event_store: EventStorePort,
    buffer: EventBufferPort,
    time_port: TimePort | None = None,
    config: IngestConfig | None = None,
    sites: SiteDirectoryPort | None = None,
) -> EventIngestor:
    """Create an EventIngestor."""
    return EventIngestor(
        hasher=hasher,
        dedupe=dedupe,
        event_store=event_store,
        buffer=buffer,
        time_port=time_port,
        config=config,
        sites=sites,
    )


# --- Component Entry Points ---


def run_ingest(inp: IngestEventInput, *, ingestor: EventIngestor) -> IngestOutput:
    """
    Ingest one event.

    Caller-fixable problems come back as `rejected`; store failures raise.
    """
    return ingestor.ingest(inp)


def run(inp: IngestEventInput, *, ingestor: EventIngestor) -> IngestOutput:
    """Main component entry point."""
    return run_ingest(inp, ingestor=ingestor)
