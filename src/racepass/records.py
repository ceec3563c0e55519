"""Read-only runner records.

A runner record is a flat mapping of column name to scalar value as returned
by the datastore. The core never mutates it.
"""

import typing as t
from collections.abc import Iterator, Mapping
from types import MappingProxyType

Scalar = str | int | float | bool | None


class RunnerRecord(Mapping[str, Scalar]):
    """An immutable view over one participant's datastore row."""

    def __init__(self, fields: Mapping[str, t.Any]) -> None:
        self._fields: Mapping[str, t.Any] = MappingProxyType(dict(fields))

    def __getitem__(self, key: str) -> Scalar:
        return t.cast(Scalar, self._fields[key])

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"RunnerRecord(id={self.row_id!r}, fields={len(self)})"

    @property
    def row_id(self) -> str:
        """The datastore row ID as text, or an empty string."""
        return stringify(self._fields.get("id"))

    @property
    def access_key(self) -> str:
        """The opaque per-runner token used as the pass serial number."""
        return stringify(self._fields.get("access_key"))


def lookup_field(record: Mapping[str, t.Any], name: str) -> Scalar:
    """Look up a runner field by name.

    Unknown fields and non-scalar values are reported as absent (None).
    """
    if not name or name not in record:
        return None
    value = record[name]
    if isinstance(value, (str, int, float, bool)):
        return value
    return None


def stringify(value: t.Any) -> str:
    """Render a scalar field value as display text.

    Booleans render as ``true``/``false`` and integral floats without a
    decimal part, so values read the same on every wallet platform.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
