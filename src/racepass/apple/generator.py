"""Apple Wallet pass generator.

This module builds the pass.json descriptor for a runner from the event's
wallet configuration and produces the signed .pkpass file. The pass style
is ``generic``.
"""

import json
import re
import typing as t
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone

import structlog

from racepass.apple.certificates import AppleSigningCredentials
from racepass.apple.fields import resolve_fields
from racepass.apple.formatting import (
    PassColors,
    format_iso_date,
    parse_iso_datetime,
    resolve_pass_colors,
)
from racepass.apple.images import ImageFetcher, load_pass_images
from racepass.apple.packager import PassPackager, build_bundle_files
from racepass.apple.signer import ApplePassSigner
from racepass.exceptions import ValidationError
from racepass.records import RunnerRecord, lookup_field, stringify
from racepass.schemas import WalletVisualConfig

logger = structlog.get_logger(__name__)

PASS_TYPE_ID_RE = re.compile(r"^pass\.([a-z0-9-]+\.)+[a-z]{2,}$", re.IGNORECASE)
TEAM_ID_RE = re.compile(r"^[A-Z0-9]{10}$", re.IGNORECASE)

DEFAULT_EXPIRATION = timedelta(days=365)
BARCODE_MESSAGE_ENCODING = "utf-8"


def _required(value: str, name: str) -> str:
    value = value.strip()
    if not value:
        raise ValidationError(f"{name} is required and cannot be empty", field=name)
    return value


def _serial_number(record: RunnerRecord) -> str:
    serial = record.access_key.strip() or record.row_id.strip()
    if not serial:
        raise ValidationError("Runner must have an access_key or id to use as serialNumber", field="serialNumber")
    return serial


def _barcode_message(config: WalletVisualConfig, record: RunnerRecord, serial_number: str) -> str:
    message = stringify(lookup_field(record, config.barcode_value_source)).strip()
    if not message:
        logger.warning("barcode_value_empty", source=config.barcode_value_source)
        message = serial_number.strip()
    if not message:
        raise ValidationError("Barcode message cannot be empty", field="barcodeValueSource")
    return message


def _warn_on_identifier_format(pass_type_id: str, team_id: str) -> None:
    if not PASS_TYPE_ID_RE.match(pass_type_id):
        logger.warning("pass_type_id_format_unexpected", pass_type_id=pass_type_id)
    if not TEAM_ID_RE.match(team_id):
        logger.warning("team_id_format_unexpected", team_id=team_id)


def _relevant_date(config: WalletVisualConfig, now: datetime) -> str | None:
    if not config.relevant_date.strip():
        return None
    relevant = parse_iso_datetime(config.relevant_date)
    if relevant is None:
        logger.warning("relevant_date_invalid", relevant_date=config.relevant_date)
        return None
    # A past relevantDate makes Wallet show the pass as expired.
    if relevant < now:
        logger.warning("relevant_date_in_past_omitted", relevant_date=format_iso_date(relevant))
        return None
    return format_iso_date(relevant)


def _expiration_date(config: WalletVisualConfig, now: datetime) -> str:
    if config.expiration_date.strip():
        expiration = parse_iso_datetime(config.expiration_date)
        if expiration is not None:
            return format_iso_date(expiration)
        logger.warning("expiration_date_invalid", expiration_date=config.expiration_date)
    return format_iso_date(now + DEFAULT_EXPIRATION)


def resolve_colors(config: WalletVisualConfig, record: Mapping[str, t.Any]) -> PassColors:
    """Resolve pass colors for a runner, including the cohort override."""
    return resolve_pass_colors(
        foreground=config.foreground_color,
        background=config.background_color,
        label=config.label_color,
        cohort_colors=config.cohort_background_colors,
        cohort_field=config.cohort_field,
        record=record,
    )


def build_pass_json(
    config: WalletVisualConfig,
    record: RunnerRecord,
    now: datetime | None = None,
) -> dict[str, t.Any]:
    """Build the pass.json descriptor for a runner.

    Args:
        config: The event's Apple Wallet configuration.
        record: The runner record.
        now: Generation time. Defaults to the current time.

    Returns:
        The descriptor as a JSON-serializable dict.

    Raises:
        ValidationError: If a required identity field, the serial number,
            the barcode message or the primary field is missing.
    """
    now = now or datetime.now(timezone.utc)

    pass_type_id = _required(config.pass_type_id, "passTypeId")
    team_id = _required(config.team_id, "teamId")
    organization_name = _required(config.organization_name, "organizationName")
    description = _required(config.description, "description")
    _warn_on_identifier_format(pass_type_id, team_id)

    serial_number = _serial_number(record)
    barcode_message = _barcode_message(config, record, serial_number)
    fields = resolve_fields(config.field_mappings, record)
    colors = resolve_colors(config, record)

    barcode = {
        "message": barcode_message,
        "format": config.barcode_format.value,
        "messageEncoding": BARCODE_MESSAGE_ENCODING,
    }

    pass_json: dict[str, t.Any] = {
        "formatVersion": 1,
        "passTypeIdentifier": pass_type_id,
        "serialNumber": serial_number,
        "teamIdentifier": team_id,
        "organizationName": organization_name,
        "description": description,
        "foregroundColor": colors.foreground,
        "backgroundColor": colors.background,
        "labelColor": colors.label,
        "generic": fields.to_pass_structure(),
        "barcodes": [barcode],
        # Singular form for older Wallet versions
        "barcode": dict(barcode),
    }

    if config.logo_text:
        pass_json["logoText"] = config.logo_text

    relevant_date = _relevant_date(config, now)
    if relevant_date:
        pass_json["relevantDate"] = relevant_date

    pass_json["expirationDate"] = _expiration_date(config, now)

    if config.event_latitude is not None and config.event_longitude is not None:
        location: dict[str, t.Any] = {"latitude": config.event_latitude, "longitude": config.event_longitude}
        if config.relevant_text:
            location["relevantText"] = config.relevant_text
        pass_json["locations"] = [location]

    return pass_json


class ApplePassGenerator:
    """Generates Apple Wallet .pkpass files for runners."""

    CONTENT_TYPE = "application/vnd.apple.pkpass"
    FILE_EXTENSION = "pkpass"

    def __init__(self, credentials: AppleSigningCredentials, fetcher: ImageFetcher | None = None) -> None:
        """Initialize the generator.

        Args:
            credentials: The validated signing bundle.
            fetcher: Image fetcher to use. If not provided, a default fetcher is created.
        """
        self.signer = ApplePassSigner(credentials)
        self.packager = PassPackager(self.signer)
        self.fetcher = fetcher or ImageFetcher()

    def get_pass_content_type(self) -> str:
        """Get the MIME content type for Apple passes."""
        return self.CONTENT_TYPE

    def get_pass_file_extension(self) -> str:
        """Get the file extension for Apple passes."""
        return self.FILE_EXTENSION

    def generate_pass(self, config: WalletVisualConfig, record: RunnerRecord, now: datetime | None = None) -> bytes:
        """Generate a .pkpass file for a runner.

        Returns:
            The .pkpass file as bytes.

        Raises:
            ValidationError: If the configuration yields an invalid pass.
            SigningError: If the manifest cannot be signed.
            PackagingError: If the archive cannot be assembled.
        """
        pass_json = build_pass_json(config, record, now=now)
        pass_json_bytes = json.dumps(pass_json, indent=2).encode("utf-8")

        images = load_pass_images(self.fetcher, config.icon_uri, config.logo_uri, config.strip_image_uri)
        colors = PassColors(
            background=pass_json["backgroundColor"],
            foreground=pass_json["foregroundColor"],
            label=pass_json["labelColor"],
        )
        files = build_bundle_files(pass_json_bytes, images, colors)
        pkpass_bytes = self.packager.package(files)

        logger.info(
            "pass_generated",
            runner_id=record.row_id,
            serial_number=pass_json["serialNumber"],
            files=len(files),
            size=len(pkpass_bytes),
        )
        return pkpass_bytes


def build_apple_pass(
    record: Mapping[str, t.Any],
    config: WalletVisualConfig,
    credentials: AppleSigningCredentials,
    fetcher: ImageFetcher | None = None,
) -> bytes:
    """Build a signed .pkpass for one runner without any ambient state."""
    runner = record if isinstance(record, RunnerRecord) else RunnerRecord(record)
    return ApplePassGenerator(credentials, fetcher=fetcher).generate_pass(config, runner)
