"""Tests for placeholder substitution and runner records."""

import pytest

from racepass.records import RunnerRecord, lookup_field, stringify
from racepass.templating import fill_template


class TestFillTemplate:
    """Tests for fill_template."""

    @pytest.fixture
    def record(self) -> RunnerRecord:
        return RunnerRecord(
            {
                "id": 7,
                "first_name": "Malee",
                "bib": "0042",
                "distance": 21.0,
                "pace": 5.5,
                "finisher": True,
                "nickname": None,
            }
        )

    def test_substitutes_placeholders(self, record: RunnerRecord) -> None:
        """Should replace each placeholder with the runner's value."""
        assert fill_template("Hello {first_name}, bib {bib}", record) == "Hello Malee, bib 0042"

    def test_missing_and_null_values_become_empty(self, record: RunnerRecord) -> None:
        """Should render unknown fields and null values as empty text."""
        assert fill_template("[{nickname}][{unknown}]", record) == "[][]"

    @pytest.mark.parametrize("template", [None, ""])
    def test_empty_template(self, record: RunnerRecord, template: str | None) -> None:
        """Should return an empty string for an empty or missing template."""
        assert fill_template(template, record) == ""

    def test_number_and_boolean_rendering(self, record: RunnerRecord) -> None:
        """Should render integral floats without decimals and booleans in lowercase."""
        assert fill_template("{distance}K {pace} {finisher}", record) == "21K 5.5 true"

    def test_braces_without_identifier_are_kept(self, record: RunnerRecord) -> None:
        """Should leave braces that do not wrap a plain identifier untouched."""
        assert fill_template("{} {first name} {{bib}}", record) == "{} {first name} {0042}"

    def test_values_are_not_expanded_again(self) -> None:
        """Should not treat a substituted value as a template."""
        record = RunnerRecord({"a": "{b}", "b": "oops"})

        assert fill_template("{a}", record) == "{b}"

    def test_unicode_text(self) -> None:
        """Should keep non-ASCII text in templates and values."""
        record = RunnerRecord({"colour_sign": "1 วัน"})

        assert fill_template("กลุ่ม: {colour_sign}", record) == "กลุ่ม: 1 วัน"


class TestRunnerRecord:
    """Tests for RunnerRecord and its helpers."""

    def test_read_only_mapping(self) -> None:
        """Should expose fields as a mapping that cannot be modified."""
        source = {"id": 1, "bib": "1"}
        record = RunnerRecord(source)
        source["bib"] = "changed"

        assert record["bib"] == "1"
        assert len(record) == 2
        with pytest.raises(TypeError):
            record["bib"] = "2"  # type: ignore[index]

    def test_row_id_and_access_key(self) -> None:
        """Should render the row ID and access key as text."""
        record = RunnerRecord({"id": 42, "access_key": "ak-1"})

        assert record.row_id == "42"
        assert record.access_key == "ak-1"

    def test_missing_identifiers(self) -> None:
        """Should report missing identifiers as empty strings."""
        record = RunnerRecord({})

        assert record.row_id == ""
        assert record.access_key == ""

    def test_lookup_field_ignores_non_scalars(self) -> None:
        """Should report nested values as absent."""
        record = {"tags": ["a", "b"], "bib": "1"}

        assert lookup_field(record, "tags") is None
        assert lookup_field(record, "bib") == "1"
        assert lookup_field(record, "") is None

    @pytest.mark.parametrize(
        "value,expected",
        [(None, ""), (False, "false"), (12.0, "12"), (12.5, "12.5"), (3, "3"), ("x", "x")],
    )
    def test_stringify(self, value: object, expected: str) -> None:
        """Should render scalars the same way on every platform."""
        assert stringify(value) == expected
