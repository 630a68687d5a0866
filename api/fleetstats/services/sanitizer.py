"""Event sanitizer: raw query parameters to a TelemetryEvent.

Pings arrive from untrusted clients as flat string maps. Sanitizing never
rejects an event: missing or malformed values degrade to safe defaults so a
reporting instance can never fail its own startup because of telemetry.

The country is never read from the client payload. It comes from the
transport layer (edge connection metadata) and is passed through as-is.
"""

import re
from typing import Mapping, Optional

from fleetstats.config import settings
from fleetstats.schemas.telemetry import TelemetryEvent

DEFAULT_TEXT = "unknown"
DEFAULT_COUNTRY = "Unknown"

TRUE_VALUES = frozenset({"true", "1"})

# Integers above this are treated as overflow (largest exact float64 integer)
MAX_SAFE_INT = 2**53 - 1

_INT_PREFIX = re.compile(r"^[+-]?\d+")

# Field name -> accepted query keys, first present key wins
TEXT_FIELDS: dict[str, tuple[str, ...]] = {
    "instance_id": ("instance_id",),
    "version": ("version",),
    "os": ("os",),
    "arch": ("arch",),
    "cpu_model": ("cpu_model",),
}

INT_FIELDS: dict[str, tuple[str, ...]] = {
    "cpu_cores": ("cpu", "cpu_cores"),
    "ram_gb": ("ram", "ram_gb"),
    "cameras": ("cameras",),
    "groups": ("groups",),
    "events": ("events",),
}

BOOL_FIELDS: dict[str, tuple[str, ...]] = {
    "gpu_enabled": ("gpu",),
    "notifications_enabled": ("notifications",),
}


def clean_text(value, max_length: Optional[int] = None, default: str = DEFAULT_TEXT) -> str:
    """Coerce to text, strip, and cap length. Empty becomes the default."""
    if max_length is None:
        max_length = settings.max_field_length
    if value is None:
        return default
    text = str(value).strip()[:max_length]
    return text or default


def parse_count(value) -> int:
    """Parse a base-10 integer, clamping anything invalid or negative to 0.

    Like a lenient parseInt, a leading integer prefix is honoured
    ("12abc" -> 12). Non-numeric, empty, negative and overflowing
    values all yield 0.
    """
    if value is None:
        return 0
    match = _INT_PREFIX.match(str(value).strip())
    if match is None:
        return 0
    text = match.group(0)
    digits = text.lstrip("+-").lstrip("0")
    if not digits:
        return 0
    # Length check first: int() refuses very long digit strings
    if text.startswith("-") or len(digits) > len(str(MAX_SAFE_INT)):
        return 0
    number = int(digits)
    if number > MAX_SAFE_INT:
        return 0
    return number


def parse_flag(value) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() in TRUE_VALUES


def _first(raw: Mapping[str, Optional[str]], keys: tuple[str, ...]):
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def sanitize(
    raw: Mapping[str, Optional[str]],
    country: Optional[str] = None,
    max_length: Optional[int] = None,
) -> TelemetryEvent:
    """Normalize one raw ping into a TelemetryEvent. Never raises.

    Args:
        raw: Flat query-parameter mapping from the reporting instance
        country: Country code from the transport layer (None if unknown)
        max_length: Cap for text fields (defaults to settings.max_field_length)
    """
    fields: dict = {}
    for name, keys in TEXT_FIELDS.items():
        fields[name] = clean_text(_first(raw, keys), max_length)
    for name, keys in INT_FIELDS.items():
        fields[name] = parse_count(_first(raw, keys))
    for name, keys in BOOL_FIELDS.items():
        fields[name] = parse_flag(_first(raw, keys))
    fields["country"] = str(country) if country else DEFAULT_COUNTRY
    return TelemetryEvent(**fields)
