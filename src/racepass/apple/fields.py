"""Resolution of configured field mappings into Apple pass field groups.

Two layouts exist in stored configurations. The current one lists Apple
field groups directly. The older one, shared with the Google Wallet editor,
has a header, a subheader and three-column information rows. Both are
classified into a tagged layout first and then resolved into one canonical
set of groups, so the descriptor builder only ever sees ``ResolvedFields``.
"""

import typing as t
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import structlog

from racepass.exceptions import ValidationError
from racepass.schemas import AppleFieldMappings, FieldMapping, InformationRow, TemplateToggle
from racepass.templating import fill_template

logger = structlog.get_logger(__name__)

MAX_PRIMARY_FIELDS = 2

GROUP_NAMES = ("headerFields", "primaryFields", "secondaryFields", "auxiliaryFields", "backFields")


@dataclass(frozen=True)
class PassField:
    """A field to display on the pass."""

    key: str
    label: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"key": self.key, "label": self.label, "value": self.value}


@dataclass(frozen=True)
class ModernLayout:
    """Field groups configured directly in Apple terms."""

    groups: Mapping[str, Sequence[FieldMapping]]


@dataclass(frozen=True)
class LegacyLayout:
    """The header/subheader/information-rows layout."""

    header: TemplateToggle | None
    subheader: TemplateToggle | None
    rows: Sequence[InformationRow]


FieldMappingConfig = ModernLayout | LegacyLayout


@dataclass
class ResolvedFields:
    """Canonical, filled field groups ready for the pass descriptor."""

    header_fields: list[PassField] = field(default_factory=list)
    primary_fields: list[PassField] = field(default_factory=list)
    secondary_fields: list[PassField] = field(default_factory=list)
    auxiliary_fields: list[PassField] = field(default_factory=list)
    back_fields: list[PassField] = field(default_factory=list)

    def group(self, name: str) -> list[PassField]:
        return t.cast(list[PassField], getattr(self, _ATTRIBUTES[name]))

    def to_pass_structure(self) -> dict[str, list[dict[str, str]]]:
        """Serialize for the pass ``generic`` key.

        Empty optional groups are omitted; primaryFields is always present.
        """
        structure: dict[str, list[dict[str, str]]] = {}
        for name in GROUP_NAMES:
            fields = self.group(name)
            if fields or name == "primaryFields":
                structure[name] = [f.to_dict() for f in fields]
        return structure


_ATTRIBUTES = {
    "headerFields": "header_fields",
    "primaryFields": "primary_fields",
    "secondaryFields": "secondary_fields",
    "auxiliaryFields": "auxiliary_fields",
    "backFields": "back_fields",
}


def classify_layouts(mappings: AppleFieldMappings) -> list[FieldMappingConfig]:
    """Split stored mappings into the layouts they contain.

    The modern layout is always present (possibly with empty groups); the
    legacy layout is added when any of its sections is configured.
    """
    layouts: list[FieldMappingConfig] = [
        ModernLayout(
            groups={
                "headerFields": mappings.header_fields,
                "primaryFields": mappings.primary_fields,
                "secondaryFields": mappings.secondary_fields,
                "auxiliaryFields": mappings.auxiliary_fields,
                "backFields": mappings.back_fields,
            }
        )
    ]
    if mappings.header or mappings.subheader or mappings.information_rows:
        layouts.append(
            LegacyLayout(header=mappings.header, subheader=mappings.subheader, rows=mappings.information_rows)
        )
    return layouts


def _fill_mapping(mapping: FieldMapping, index: int, record: Mapping[str, t.Any]) -> PassField:
    label = fill_template(mapping.label, record)
    return PassField(
        key=mapping.key or f"field_{index}",
        label=label or mapping.label,
        value=fill_template(mapping.value_template, record),
    )


def _fill_toggle(toggle: TemplateToggle | None, record: Mapping[str, t.Any]) -> str:
    if toggle is None or not toggle.enabled or not toggle.template:
        return ""
    return fill_template(toggle.template, record).strip()


def _resolve_modern(layout: ModernLayout, record: Mapping[str, t.Any], into: ResolvedFields) -> None:
    for name, mappings in layout.groups.items():
        into.group(name).extend(_fill_mapping(mapping, index, record) for index, mapping in enumerate(mappings))


def _resolve_legacy(layout: LegacyLayout, record: Mapping[str, t.Any], into: ResolvedFields) -> None:
    header = _fill_toggle(layout.header, record)
    if header:
        into.header_fields.append(PassField(key="google_header", label="", value=header))

    subheader = _fill_toggle(layout.subheader, record)
    if subheader:
        into.primary_fields.append(PassField(key="google_subheader", label="", value=subheader))

    for row_index, row in enumerate(layout.rows):
        for position, cell in row.cells():
            if cell is None or not cell.label:
                continue
            label = fill_template(cell.label, record).strip()
            if not label:
                continue
            value = fill_template(cell.value, record).strip()
            into.auxiliary_fields.append(
                PassField(
                    key=f"info_row_{row_index}_{position}",
                    label=label if value else "",
                    value=value or label,
                )
            )


def resolve_fields(mappings: AppleFieldMappings, record: Mapping[str, t.Any]) -> ResolvedFields:
    """Fill and validate the pass field groups for one runner.

    Groups other than primaryFields drop entries whose value is empty.
    primaryFields keeps empty entries, since Apple needs the group to exist,
    and is truncated to two.

    Raises:
        ValidationError: If no primary field remains.
    """
    resolved = ResolvedFields()
    for layout in classify_layouts(mappings):
        if isinstance(layout, ModernLayout):
            _resolve_modern(layout, record, resolved)
        else:
            _resolve_legacy(layout, record, resolved)

    for name in GROUP_NAMES:
        if name == "primaryFields":
            continue
        fields = resolved.group(name)
        fields[:] = [f for f in fields if f.value != ""]

    if len(resolved.primary_fields) > MAX_PRIMARY_FIELDS:
        logger.warning(
            "primary_fields_truncated",
            configured=len(resolved.primary_fields),
            kept=MAX_PRIMARY_FIELDS,
            dropped_keys=[f.key for f in resolved.primary_fields[MAX_PRIMARY_FIELDS:]],
        )
        del resolved.primary_fields[MAX_PRIMARY_FIELDS:]

    if not resolved.primary_fields:
        raise ValidationError("missing primary field", field="primaryFields")

    return resolved
