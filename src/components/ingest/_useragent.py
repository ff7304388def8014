"""
User agent classification and device/browser derivation (via user_agents).

Runs on the raw user agent before it is discarded. Nothing here retains or
returns the user agent string itself.
"""

from __future__ import annotations

from enum import Enum

from user_agents import parse as parse_ua


class UAClass(str, Enum):
    """User agent classification."""

    BOT = "bot"
    REAL = "real"
    UNKNOWN = "unknown"


# Common crawler / HTTP library substrings
BOT_PATTERNS: tuple[str, ...] = (
    "bot",
    "crawler",
    "spider",
    "scraper",
    "headless",
    "lighthouse",
    "wget",
    "curl",
    "python-requests",
    "go-http-client",
    "java/",
    "libwww",
    "httpclient",
    "baiduspider",
    "slurp",
    "facebookexternalhit",
    "bytespider",
)

REAL_BROWSER_PATTERNS: tuple[str, ...] = (
    "mozilla/5.0",
    "chrome/",
    "firefox/",
    "safari/",
    "edg/",
    "opera/",
    "opr/",
    "trident/",
)

# user_agents family prefix -> reported browser; mobile variants
# ("Chrome Mobile", "Mobile Safari", "Firefox iOS") collapse onto the desktop name
BROWSER_FAMILIES: tuple[tuple[str, str], ...] = (
    ("edge", "Edge"),
    ("opera", "Opera"),
    ("firefox", "Firefox"),
    ("chrome", "Chrome"),
    ("chromium", "Chrome"),
    ("mobile safari", "Safari"),
    ("safari", "Safari"),
)

OTHER_BROWSER = "Other"
DEFAULT_DEVICE = "desktop"


def classify_user_agent(user_agent: str | None) -> UAClass:
    """Returns BOT, REAL, or UNKNOWN based on patterns."""
    if not user_agent:
        return UAClass.UNKNOWN

    ua_lower = user_agent.lower()

    # Bot patterns take priority
    for pattern in BOT_PATTERNS:
        if pattern in ua_lower:
            return UAClass.BOT

    for pattern in REAL_BROWSER_PATTERNS:
        if pattern in ua_lower:
            return UAClass.REAL

    return UAClass.UNKNOWN


def is_bot(user_agent: str | None) -> bool:
    return classify_user_agent(user_agent) == UAClass.BOT


def parse_device(user_agent: str | None) -> str:
    """Device category: mobile, tablet, or desktop."""
    if not user_agent:
        return DEFAULT_DEVICE
    ua = parse_ua(user_agent)
    if ua.is_tablet:
        return "tablet"
    if ua.is_mobile:
        return "mobile"
    return DEFAULT_DEVICE


def parse_browser(user_agent: str | None) -> str:
    if not user_agent:
        return OTHER_BROWSER
    family = parse_ua(user_agent).browser.family.lower()
    for prefix, name in BROWSER_FAMILIES:
        if family.startswith(prefix):
            return name
    return OTHER_BROWSER
