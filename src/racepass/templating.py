"""Placeholder substitution for user-authored pass text.

Templates reference runner columns as ``{column_name}``. Both the Apple and
Google pipelines fill text through :func:`fill_template`.
"""

import re
import typing as t
from collections.abc import Mapping

import structlog

from racepass.records import lookup_field, stringify

logger = structlog.get_logger(__name__)

PLACEHOLDER_RE = re.compile(r"\{([A-Za-z0-9_]+)\}")


def fill_template(template: str | None, record: Mapping[str, t.Any]) -> str:
    """Substitute ``{identifier}`` placeholders with runner values.

    Missing or null values become empty strings. Braces that do not wrap a
    plain identifier are left untouched, and substituted values are never
    expanded again.

    Args:
        template: The template text. None or empty yields "".
        record: The runner record to read values from.

    Returns:
        The filled text.
    """
    if not template or not isinstance(template, str):
        return ""

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        value = lookup_field(record, name)
        if value is None:
            logger.debug("template_placeholder_missing", placeholder=match.group(0))
            return ""
        return stringify(value)

    return PLACEHOLDER_RE.sub(_replace, template)
