"""PEM repair for secrets stored in environment variables.

Secret stores commonly flatten a PEM file into one line with literal ``\\n``
sequences, wrap it in quotes, or re-wrap the base64 body. ``normalize_pem``
turns any of those back into a strict PEM block.
"""

import re
import textwrap

import structlog

from racepass.exceptions import ConfigError

logger = structlog.get_logger(__name__)

PEM_HEADER_RE = re.compile(r"-----BEGIN ([A-Z0-9 ]+)-----")
PEM_FOOTER_RE = re.compile(r"-----END ([A-Z0-9 ]+)-----")
BASE64_BODY_RE = re.compile(r"^[A-Za-z0-9+/=]+$")
WHITESPACE_RE = re.compile(r"\s+")

PEM_LINE_LENGTH = 64
QUOTE_CHARS = ("'", '"')


def _unquote(text: str) -> str:
    if text[:1] in QUOTE_CHARS:
        text = text[1:]
    if text[-1:] in QUOTE_CHARS:
        text = text[:-1]
    return text.replace('\\"', '"').replace("\\'", "'")


def normalize_pem(raw: str | None, label: str) -> str:
    """Repair escaped or re-wrapped PEM text into a strict PEM block.

    Args:
        raw: The PEM text as stored in configuration.
        label: Human name of the bundle member, used in error messages
            (e.g. ``"signer certificate"``).

    Returns:
        ``HEADER\\n<base64 wrapped at 64 columns>\\nFOOTER``.

    Raises:
        ConfigError: If no BEGIN/END pair of the same type is found, the
            footer precedes the header, or the body is empty or not base64.
    """
    if not raw or not raw.strip():
        raise ConfigError(f"{label}: PEM text is empty", field=label)

    text = raw.strip().replace("\\n", "\n")
    text = _unquote(text)

    header = PEM_HEADER_RE.search(text)
    if header is None:
        raise ConfigError(f"{label}: invalid PEM, missing BEGIN header", field=label)
    footer = PEM_FOOTER_RE.search(text)
    if footer is None:
        raise ConfigError(f"{label}: invalid PEM, missing END footer", field=label)
    if footer.group(1) != header.group(1):
        raise ConfigError(
            f"{label}: invalid PEM, END {footer.group(1)} footer does not match BEGIN {header.group(1)} header",
            field=label,
        )
    if footer.start() < header.end():
        raise ConfigError(f"{label}: invalid PEM, END footer precedes BEGIN header", field=label)

    body = WHITESPACE_RE.sub("", text[header.end() : footer.start()])
    if not body:
        raise ConfigError(f"{label}: PEM body is empty", field=label)
    if not BASE64_BODY_RE.match(body):
        raise ConfigError(f"{label}: PEM body contains non-base64 characters", field=label)

    wrapped = "\n".join(textwrap.wrap(body, PEM_LINE_LENGTH))
    logger.debug("pem_normalized", member=label, pem_type=header.group(1), body_length=len(body))
    return f"{header.group(0)}\n{wrapped}\n{footer.group(0)}"
