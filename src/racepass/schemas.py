"""Pydantic schemas for tenant wallet configuration.

The datastore keeps one configuration row per event. Apple settings live in a
JSON column with camelCase keys; Google settings are top-level snake_case
columns. Both shapes are user-authored, so optional sections that are missing
or malformed degrade to empty values instead of failing.
"""

import json
import typing as t
from collections.abc import Mapping
from enum import Enum
from typing import Annotated

import pydantic
import structlog
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from racepass.exceptions import ConfigError

logger = structlog.get_logger(__name__)


def _coerce_text(value: t.Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    return ""


def _coerce_objects(value: t.Any) -> list[dict[str, t.Any]]:
    if not isinstance(value, list):
        if value is not None:
            logger.warning("config_section_not_a_list", got=type(value).__name__)
        return []
    objects = [item for item in value if isinstance(item, dict)]
    if len(objects) != len(value):
        logger.warning("config_section_invalid_entries", skipped=len(value) - len(objects))
    return objects


def _coerce_object(value: t.Any) -> dict[str, t.Any] | None:
    return value if isinstance(value, dict) else None


def _coerce_number(value: t.Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _coerce_mapping(value: t.Any) -> dict[str, t.Any]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("config_json_undecodable")
            return {}
    return value if isinstance(value, dict) else {}


def _coerce_string_map(value: t.Any) -> dict[str, str]:
    return {str(k): str(v) for k, v in _coerce_mapping(value).items() if v}


Text = Annotated[str, BeforeValidator(_coerce_text)]
Number = Annotated[float | None, BeforeValidator(_coerce_number)]
StringMap = Annotated[dict[str, str], BeforeValidator(_coerce_string_map)]


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


# --- Shared layout pieces ---


class TemplateToggle(_Schema):
    """A single optional templated line, e.g. a card header."""

    enabled: bool = False
    template: Text = ""

    @field_validator("enabled", mode="before")
    @classmethod
    def _enabled(cls, value: t.Any) -> bool:
        return bool(value)


class InformationCell(_Schema):
    """One cell of a three-column information row."""

    label: Text = ""
    value: Text = ""


class InformationRow(_Schema):
    """A row of up to three labelled cells."""

    left: Annotated[InformationCell | None, BeforeValidator(_coerce_object)] = None
    middle: Annotated[InformationCell | None, BeforeValidator(_coerce_object)] = None
    right: Annotated[InformationCell | None, BeforeValidator(_coerce_object)] = None

    def cells(self) -> list[tuple[str, InformationCell | None]]:
        """Cells in display order with their position names."""
        return [("left", self.left), ("middle", self.middle), ("right", self.right)]


OptionalToggle = Annotated[TemplateToggle | None, BeforeValidator(_coerce_object)]
InformationRows = Annotated[list[InformationRow], BeforeValidator(_coerce_objects)]


# --- Apple ---


class BarcodeFormat(str, Enum):
    """Barcode symbologies supported by Apple Wallet."""

    QR = "PKBarcodeFormatQR"
    PDF417 = "PKBarcodeFormatPDF417"
    AZTEC = "PKBarcodeFormatAztec"
    CODE128 = "PKBarcodeFormatCode128"


class FieldMapping(_Schema):
    """One displayable pass field: a key, a label and a value template."""

    key: Text = ""
    label: Text = ""
    value_template: Text = Field(default="", alias="valueTemplate")


FieldMappings = Annotated[list[FieldMapping], BeforeValidator(_coerce_objects)]


class AppleFieldMappings(_Schema):
    """Field groups for an Apple pass.

    ``header``, ``subheader`` and ``informationRows`` are the older layout
    shared with Google Wallet; they are folded into the Apple groups when the
    pass is resolved.
    """

    header_fields: FieldMappings = Field(default_factory=list, alias="headerFields")
    primary_fields: FieldMappings = Field(default_factory=list, alias="primaryFields")
    secondary_fields: FieldMappings = Field(default_factory=list, alias="secondaryFields")
    auxiliary_fields: FieldMappings = Field(default_factory=list, alias="auxiliaryFields")
    back_fields: FieldMappings = Field(default_factory=list, alias="backFields")

    header: OptionalToggle = None
    subheader: OptionalToggle = None
    information_rows: InformationRows = Field(default_factory=list, alias="informationRows")


class WalletVisualConfig(_Schema):
    """Per-event Apple Wallet appearance and identity."""

    pass_type_id: Text = Field(default="", alias="passTypeId")
    team_id: Text = Field(default="", alias="teamId")
    organization_name: Text = Field(default="", alias="organizationName")
    description: Text = ""
    logo_text: Text = Field(default="", alias="logoText")

    foreground_color: Text = Field(default="", alias="foregroundColor")
    background_color: Text = Field(default="", alias="backgroundColor")
    label_color: Text = Field(default="", alias="labelColor")

    icon_uri: Text = Field(default="", alias="iconUri")
    logo_uri: Text = Field(default="", alias="logoUri")
    strip_image_uri: Text = Field(default="", alias="stripImageUri")

    relevant_date: Text = Field(default="", alias="relevantDate")
    expiration_date: Text = Field(default="", alias="expirationDate")
    event_latitude: Number = Field(default=None, alias="eventLatitude")
    event_longitude: Number = Field(default=None, alias="eventLongitude")
    relevant_text: Text = Field(default="", alias="relevantText")

    barcode_format: BarcodeFormat = Field(default=BarcodeFormat.QR, alias="barcodeFormat")
    barcode_value_source: Text = Field(default="bib", alias="barcodeValueSource")

    cohort_field: Text = Field(default="colour_sign", alias="cohortField")
    cohort_background_colors: StringMap = Field(default_factory=dict, alias="cohortBackgroundColors")

    field_mappings: Annotated[AppleFieldMappings, BeforeValidator(_coerce_mapping)] = Field(
        default_factory=AppleFieldMappings
    )

    @field_validator("barcode_format", mode="before")
    @classmethod
    def _default_barcode_format(cls, value: t.Any) -> t.Any:
        return value or BarcodeFormat.QR

    @field_validator("barcode_value_source", mode="before")
    @classmethod
    def _default_barcode_source(cls, value: t.Any) -> t.Any:
        return value or "bib"

    @field_validator("cohort_field", mode="before")
    @classmethod
    def _default_cohort_field(cls, value: t.Any) -> t.Any:
        return value or "colour_sign"

    @classmethod
    def from_raw(cls, data: Mapping[str, t.Any] | str | None) -> "WalletVisualConfig":
        """Parse a stored Apple configuration.

        Raises:
            ConfigError: If a scalar setting has an unusable value.
        """
        return _parse(cls, data)


# --- Google ---


class TextModuleMapping(_Schema):
    """A Google Wallet text module with a templated body."""

    id: Text = ""
    header: Text = ""
    body_template: Text = Field(default="", alias="bodyTemplate")


class BarcodeValueMapping(_Schema):
    """Which runner column supplies the Google barcode value."""

    enabled: bool = False
    source_column: Text = Field(default="", alias="sourceColumn")


class GoogleFieldMappings(_Schema):
    """Field layout for a Google Wallet generic object."""

    header: OptionalToggle = None
    subheader: OptionalToggle = None
    barcode_value: Annotated[BarcodeValueMapping | None, BeforeValidator(_coerce_object)] = Field(
        default=None, alias="barcodeValue"
    )
    text_modules: Annotated[list[TextModuleMapping], BeforeValidator(_coerce_objects)] = Field(
        default_factory=list, alias="textModules"
    )
    information_rows: InformationRows = Field(default_factory=list, alias="informationRows")


class GoogleWalletConfig(_Schema):
    """Per-event Google Wallet class and object settings."""

    issuer_id: Text = ""
    class_suffix: Text = ""
    hex_background_color: Text = ""
    logo_uri: Text = ""
    card_title: Text = ""
    hero_image_uri: Text = ""
    official_website_uri: Text = ""
    event_latitude: Number = Field(default=None, alias="eventLatitude")
    event_longitude: Number = Field(default=None, alias="eventLongitude")

    cohort_field: Text = Field(default="colour_sign", alias="cohortField")
    cohort_background_colors: StringMap = Field(default_factory=dict, alias="cohortBackgroundColors")
    cohort_hero_images: StringMap = Field(default_factory=dict, alias="cohortHeroImages")

    field_mappings: Annotated[GoogleFieldMappings, BeforeValidator(_coerce_mapping)] = Field(
        default_factory=GoogleFieldMappings
    )

    @field_validator("cohort_field", mode="before")
    @classmethod
    def _default_cohort_field(cls, value: t.Any) -> t.Any:
        return value or "colour_sign"

    @classmethod
    def from_raw(cls, data: Mapping[str, t.Any] | str | None) -> "GoogleWalletConfig":
        """Parse a stored Google configuration.

        Raises:
            ConfigError: If a scalar setting has an unusable value.
        """
        return _parse(cls, data)


_SchemaT = t.TypeVar("_SchemaT", bound=_Schema)


def _parse(schema: type[_SchemaT], data: Mapping[str, t.Any] | str | None) -> _SchemaT:
    try:
        return schema.model_validate(_coerce_mapping(data) if not isinstance(data, Mapping) else dict(data))
    except pydantic.ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigError(f"Invalid wallet configuration at '{location}': {first.get('msg', e)}", field=location)
