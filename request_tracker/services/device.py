# =============================================================================
# Device Detection — user agent → device type / browser / platform
# =============================================================================
#
# Coarse classification stored on the daily summary row. Ordered rule
# tables: the first matching token wins, so more specific browsers (Edge,
# Opera, Samsung Internet) are listed before the engines they embed
# (Chrome, Safari).
# =============================================================================

from __future__ import annotations

import re
from dataclasses import dataclass

UNKNOWN = "unknown"

_BOT_RE = re.compile(r"bot|crawl|spider|slurp|curl|wget|python-requests|httpx", re.IGNORECASE)
_TABLET_RE = re.compile(r"ipad|tablet|kindle|silk|playbook|(android(?!.*mobile))", re.IGNORECASE)
_MOBILE_RE = re.compile(r"mobi|iphone|ipod|android.*mobile|windows phone|blackberry", re.IGNORECASE)

_BROWSERS: list[tuple[str, re.Pattern]] = [
    ("Edge", re.compile(r"edg(e|a|ios)?/", re.IGNORECASE)),
    ("Opera", re.compile(r"opr/|opera", re.IGNORECASE)),
    ("Samsung Internet", re.compile(r"samsungbrowser", re.IGNORECASE)),
    ("Firefox", re.compile(r"firefox|fxios", re.IGNORECASE)),
    ("Chrome", re.compile(r"chrome|crios|chromium", re.IGNORECASE)),
    ("Safari", re.compile(r"safari", re.IGNORECASE)),
    ("Internet Explorer", re.compile(r"msie|trident", re.IGNORECASE)),
]

_PLATFORMS: list[tuple[str, re.Pattern]] = [
    ("iOS", re.compile(r"iphone|ipad|ipod", re.IGNORECASE)),
    ("Android", re.compile(r"android", re.IGNORECASE)),
    ("Windows", re.compile(r"windows", re.IGNORECASE)),
    ("macOS", re.compile(r"macintosh|mac os x", re.IGNORECASE)),
    ("ChromeOS", re.compile(r"cros", re.IGNORECASE)),
    ("Linux", re.compile(r"linux", re.IGNORECASE)),
]


@dataclass(frozen=True)
class DeviceInfo:
    device_type: str
    browser: str
    platform: str


def _first_match(table: list[tuple[str, re.Pattern]], user_agent: str) -> str:
    for name, pattern in table:
        if pattern.search(user_agent):
            return name
    return UNKNOWN


def parse_user_agent(user_agent: str | None) -> DeviceInfo:
    """Classify a user agent string. Empty input yields all-unknown."""
    if not user_agent:
        return DeviceInfo(UNKNOWN, UNKNOWN, UNKNOWN)

    if _BOT_RE.search(user_agent):
        device_type = "bot"
    elif _TABLET_RE.search(user_agent):
        device_type = "tablet"
    elif _MOBILE_RE.search(user_agent):
        device_type = "mobile"
    else:
        device_type = "desktop"

    return DeviceInfo(
        device_type=device_type,
        browser=_first_match(_BROWSERS, user_agent),
        platform=_first_match(_PLATFORMS, user_agent),
    )
