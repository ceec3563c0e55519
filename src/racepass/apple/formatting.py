"""Formatting utilities for Apple Wallet passes.

This module handles date parsing and formatting and the color rules
for wallet pass content.
"""

import re
import typing as t
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from racepass.records import lookup_field, stringify

logger = structlog.get_logger(__name__)

HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


@dataclass(frozen=True)
class PassColors:
    """Colors for an Apple Wallet pass in RGB format."""

    background: str  # Format: "rgb(r, g, b)"
    foreground: str
    label: str


DEFAULT_COLORS = PassColors(
    background="rgb(0, 0, 0)",
    foreground="rgb(255, 255, 255)",
    label="rgb(255, 255, 255)",
)


def to_rgb_string(color: str) -> str:
    """Convert a hex color to Apple's ``rgb(r, g, b)`` notation.

    Values that are not hex colors (including ``rgb()`` strings) are
    returned stripped but otherwise unchanged.
    """
    color = color.strip()
    match = HEX_COLOR_RE.match(color)
    if not match:
        return color

    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    r, g, b = (int(digits[i : i + 2], 16) for i in (0, 2, 4))
    return f"rgb({r}, {g}, {b})"


def resolve_cohort_value(
    overrides: Mapping[str, str],
    cohort_field: str,
    record: Mapping[str, t.Any],
) -> str | None:
    """Return the override configured for the runner's cohort, if any.

    Args:
        overrides: Sentinel cohort value to override value.
        cohort_field: Name of the runner field holding the cohort.
        record: The runner record.
    """
    if not overrides:
        return None
    cohort = lookup_field(record, cohort_field)
    if cohort is None:
        return None
    return overrides.get(stringify(cohort))


def resolve_pass_colors(
    foreground: str,
    background: str,
    label: str,
    cohort_colors: Mapping[str, str],
    cohort_field: str,
    record: Mapping[str, t.Any],
) -> PassColors:
    """Resolve the pass colors, applying the per-cohort background override.

    Empty values fall back to white text on black.
    """
    override = resolve_cohort_value(cohort_colors, cohort_field, record)
    if override:
        logger.debug("background_color_cohort_override", cohort_field=cohort_field, color=override)
        background = override

    return PassColors(
        background=to_rgb_string(background) if background.strip() else DEFAULT_COLORS.background,
        foreground=to_rgb_string(foreground) if foreground.strip() else DEFAULT_COLORS.foreground,
        label=to_rgb_string(label) if label.strip() else DEFAULT_COLORS.label,
    )


def parse_iso_datetime(value: str) -> datetime | None:
    """Parse an ISO 8601 date or datetime.

    Naive values are taken as UTC.

    Returns:
        The aware datetime, or None if the text is not ISO 8601.
    """
    if not value or not value.strip():
        return None
    try:
        dt = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_iso_date(dt: datetime) -> str:
    """Format a datetime for Apple's expected ISO 8601 format in UTC.

    Apple requires the colon in timezone offset (+00:00, not +0000).

    Args:
        dt: The datetime to format. Naive values are taken as UTC.

    Returns:
        ISO 8601 formatted string with colon in timezone.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    formatted = dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S%z")

    # Insert colon in timezone offset: +0000 -> +00:00
    if len(formatted) >= 5 and formatted[-5] in ("+", "-"):
        formatted = formatted[:-2] + ":" + formatted[-2:]

    return formatted
