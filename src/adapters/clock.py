from datetime import UTC, datetime


class SystemClock:
    """Wall clock shared by every component's TimePort."""

    def now_utc(self) -> datetime:
        return datetime.now(UTC)
