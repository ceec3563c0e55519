"""Google Wallet generic object construction.

Builds the ``genericObject`` for a runner and, when information rows are
configured, the class-level ``cardTemplateOverride`` that lays their text
modules out in rows.

See: https://developers.google.com/wallet/generic/rest/v1/genericobject
"""

import typing as t
from collections.abc import Mapping
from dataclasses import dataclass

import structlog

from racepass.apple.formatting import resolve_cohort_value
from racepass.exceptions import ValidationError
from racepass.records import RunnerRecord, lookup_field, stringify
from racepass.schemas import GoogleWalletConfig, InformationRow, TemplateToggle
from racepass.templating import fill_template

logger = structlog.get_logger(__name__)

DEFAULT_OFFICIAL_WEBSITE = "https://pay.google.com/gp/v/card/"
DEFAULT_LANGUAGE = "en"
ROW_ITEM_SLOTS = {"left": "startItem", "middle": "middleItem", "right": "endItem"}


@dataclass(frozen=True)
class GenericPass:
    """A built Google Wallet object and its optional class layout."""

    object_id: str
    class_id: str
    generic_object: dict[str, t.Any]
    card_template_override: dict[str, t.Any] | None = None

    def generic_class(self) -> dict[str, t.Any] | None:
        """The class payload carrying the layout, if there is one."""
        if self.card_template_override is None:
            return None
        return {
            "id": self.class_id,
            "classTemplateInfo": {"cardTemplateOverride": self.card_template_override},
        }


def _localized(value: str) -> dict[str, t.Any]:
    return {"defaultValue": {"language": DEFAULT_LANGUAGE, "value": value}}


def _field_path(module_id: str) -> dict[str, t.Any]:
    return {"firstValue": {"fields": [{"fieldPath": f"object.textModulesData['{module_id}']"}]}}


def _toggle_text(toggle: TemplateToggle | None, record: Mapping[str, t.Any]) -> str | None:
    if toggle is None or not toggle.enabled:
        return None
    return fill_template(toggle.template, record)


def build_information_rows(
    rows: list[InformationRow],
    record: Mapping[str, t.Any],
) -> tuple[list[dict[str, str]], list[dict[str, t.Any]]]:
    """Turn information rows into text modules and card row templates.

    Each cell with a non-blank filled label becomes a text module
    ``info_row_<row>_<position>``. A cell without a value shows its label as
    the module body. Rows filled left, middle and right become ``threeItems``;
    rows filled left and right become ``twoItems``; other shapes contribute
    modules only.

    Returns:
        The text modules and the ``cardRowTemplateInfos`` entries.
    """
    modules: list[dict[str, str]] = []
    row_templates: list[dict[str, t.Any]] = []

    for row_index, row in enumerate(rows):
        template: dict[str, t.Any] = {}
        for position, cell in row.cells():
            if cell is None or not cell.label:
                continue
            label = fill_template(cell.label, record)
            if not label.strip():
                continue
            value = fill_template(cell.value, record)
            module_id = f"info_row_{row_index}_{position}"
            has_value = bool(value.strip())
            modules.append(
                {
                    "id": module_id,
                    "header": label if has_value else "",
                    "body": value if has_value else label,
                }
            )
            template[ROW_ITEM_SLOTS[position]] = _field_path(module_id)

        slots = set(template)
        if slots == {"startItem", "middleItem", "endItem"}:
            row_templates.append({"threeItems": template})
        elif slots == {"startItem", "endItem"}:
            row_templates.append({"twoItems": template})
        elif slots:
            logger.debug("information_row_without_layout", row=row_index, slots=sorted(slots))

    return modules, row_templates


def build_generic_object(config: GoogleWalletConfig, record: RunnerRecord) -> GenericPass:
    """Build the Google Wallet generic object for a runner.

    Raises:
        ValidationError: If the issuer ID, class suffix or the runner's
            access key is missing.
    """
    issuer_id = config.issuer_id.strip()
    if not issuer_id:
        raise ValidationError("issuer_id is required", field="issuer_id")
    if not config.class_suffix.strip():
        raise ValidationError("class_suffix is required", field="class_suffix")
    access_key = record.access_key.strip()
    if not access_key:
        raise ValidationError("Runner must have an access_key to use as the object ID", field="access_key")

    class_id = f"{issuer_id}.{config.class_suffix.strip()}"
    object_id = f"{issuer_id}.{access_key}"
    mappings = config.field_mappings

    background = (
        resolve_cohort_value(config.cohort_background_colors, config.cohort_field, record)
        or config.hex_background_color
    )
    hero_image = (
        resolve_cohort_value(config.cohort_hero_images, config.cohort_field, record) or config.hero_image_uri
    )

    generic_object: dict[str, t.Any] = {
        "id": object_id,
        "classId": class_id,
        "genericType": "GENERIC_TYPE_UNSPECIFIED",
        "hexBackgroundColor": background,
        "logo": {"sourceUri": {"uri": config.logo_uri}},
        "cardTitle": _localized(fill_template(config.card_title, record)),
        "linksModuleData": {
            "uris": [
                {
                    "uri": config.official_website_uri or DEFAULT_OFFICIAL_WEBSITE,
                    "description": "Official Website",
                    "id": "officialLink",
                }
            ]
        },
        "textModulesData": [],
    }

    if hero_image:
        generic_object["heroImage"] = {"sourceUri": {"uri": hero_image}}

    if config.event_latitude is not None and config.event_longitude is not None:
        generic_object["locations"] = [
            {
                "kind": "walletobjects#latLongPoint",
                "latitude": config.event_latitude,
                "longitude": config.event_longitude,
            }
        ]

    header = _toggle_text(mappings.header, record)
    if header is not None:
        generic_object["header"] = _localized(header)
    subheader = _toggle_text(mappings.subheader, record)
    if subheader is not None:
        generic_object["subheader"] = _localized(subheader)

    barcode = mappings.barcode_value
    if barcode is not None and barcode.enabled and barcode.source_column:
        generic_object["barcode"] = {
            "type": "QR_CODE",
            "value": stringify(lookup_field(record, barcode.source_column)),
        }

    generic_object["textModulesData"] = [
        {"id": module.id, "header": module.header, "body": fill_template(module.body_template, record)}
        for module in mappings.text_modules
    ]

    row_modules, row_templates = build_information_rows(mappings.information_rows, record)
    generic_object["textModulesData"].extend(row_modules)
    override = {"cardRowTemplateInfos": row_templates} if row_templates else None

    return GenericPass(
        object_id=object_id,
        class_id=class_id,
        generic_object=generic_object,
        card_template_override=override,
    )
