"""Tests for the field schema, field paths and per-kind coercion."""

from __future__ import annotations

import pytest

from manifold.core.errors import CoercionError, SchemaError
from manifold.core.schema import (
    BASE_FIELDS,
    KIND_ANY,
    SCHEMA,
    FieldPath,
    apply_script_replace,
    captured_fields,
    coerce_bool,
    coerce_dropdown,
    coerce_number,
    coerce_offsets,
    coerce_script_payload,
    coerce_string,
    coerce_value,
    lookup_field,
    normalize_options,
    parse_field_path,
    values_equal,
)


class TestRegistry:
    def test_known_field_kinds(self) -> None:
        assert lookup_field("Description")["kind"] == "string"
        assert lookup_field("Type")["kind"] == "number"
        assert lookup_field("Active")["kind"] == "bool"
        assert lookup_field("Options")["kind"] == "options"
        assert lookup_field("Offset")["kind"] == "offsets"
        assert lookup_field("DropDownList")["kind"] == "dropdown"
        assert lookup_field("Script")["kind"] == "script"

    def test_unknown_and_element_paths_fall_back_to_any(self) -> None:
        """Element paths are not registry keys, so they pass through as ``any``."""
        assert lookup_field("Offset.0") == {"kind": KIND_ANY, "path": "Offset.0"}
        assert lookup_field("SomethingElse")["kind"] == KIND_ANY

    def test_every_path_matches_its_key(self) -> None:
        for name, spec in SCHEMA.items():
            assert spec["path"] == name

    def test_captured_fields_skip_optional_by_default(self) -> None:
        fields = captured_fields()
        assert fields == list(BASE_FIELDS)
        assert "Script" not in fields
        assert "Value" not in fields
        assert "CustomTypeName" not in fields

    def test_captured_fields_keep_registry_order(self) -> None:
        fields = captured_fields(include_script=True, include_custom_type_name=True)
        assert fields == [f for f in SCHEMA if f != "Value"]


class TestFieldPath:
    def test_plain_field(self) -> None:
        fp = parse_field_path("Description")
        assert fp == FieldPath("Description", ())
        assert fp.element_index is None

    def test_element_path(self) -> None:
        fp = parse_field_path("Offset.2")
        assert fp.root == "Offset"
        assert fp.element_index == 2
        assert str(fp) == "Offset.2"

    def test_non_numeric_element(self) -> None:
        assert parse_field_path("Extra.key").element_index is None

    @pytest.mark.parametrize("path", ["", ".", ".."])
    def test_empty_path_is_schema_error(self, path: str) -> None:
        with pytest.raises(SchemaError, match="Missing Path"):
            parse_field_path(path)


class TestOptions:
    def test_sorts_and_drops_unknown(self) -> None:
        raw = "[moHideChildren, moBogus,moActivateChildrenAsWell]"
        assert normalize_options(raw) == "[moActivateChildrenAsWell,moHideChildren]"

    def test_accepts_list_and_dedupes(self) -> None:
        assert normalize_options(["moHideChildren", "moHideChildren"]) == "[moHideChildren]"

    def test_empty_forms(self) -> None:
        assert normalize_options(None) == "[]"
        assert normalize_options("") == "[]"
        assert normalize_options("[]") == "[]"

    def test_rejects_scalars(self) -> None:
        with pytest.raises(SchemaError):
            normalize_options(5)


class TestScalarCoercion:
    def test_string(self) -> None:
        assert coerce_string("x") == "x"
        assert coerce_string(5) == "5"
        assert coerce_string(False) == "false"

    def test_string_rejects_null_and_containers(self) -> None:
        with pytest.raises(CoercionError):
            coerce_string(None)
        with pytest.raises(SchemaError):
            coerce_string(["x"])

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(7, 7), (2.0, 2), (1.5, 1.5), ("0x10", 16), (" 7 ", 7), ("1.5", 1.5), ("010", 10)],
    )
    def test_number(self, raw: object, expected: object) -> None:
        result = coerce_number(raw)
        assert result == expected
        assert type(result) is type(expected)

    def test_number_rejects_bool(self) -> None:
        with pytest.raises(CoercionError):
            coerce_number(True)

    def test_number_rejects_garbage_and_nan(self) -> None:
        with pytest.raises(CoercionError):
            coerce_number("twelve")
        with pytest.raises(CoercionError):
            coerce_number(float("nan"))

    def test_number_rejects_list_shape(self) -> None:
        with pytest.raises(SchemaError):
            coerce_number([1])

    @pytest.mark.parametrize("raw", [True, 1, 2.5, "true", "YES", "on", "1"])
    def test_bool_truthy(self, raw: object) -> None:
        assert coerce_bool(raw) is True

    @pytest.mark.parametrize("raw", [False, 0, "false", "No", "off", "0"])
    def test_bool_falsy(self, raw: object) -> None:
        assert coerce_bool(raw) is False

    def test_bool_rejects_unknown_string(self) -> None:
        with pytest.raises(CoercionError):
            coerce_bool("maybe")


class TestListCoercion:
    def test_offsets(self) -> None:
        assert coerce_offsets([4, "8", "0x10"]) == [4, 8, 16]
        assert coerce_offsets(()) == []

    def test_offsets_reject_fractions(self) -> None:
        with pytest.raises(CoercionError, match="Offset 0"):
            coerce_offsets([1.5])

    def test_offsets_reject_nested_lists(self) -> None:
        with pytest.raises(CoercionError, match="Offset 1"):
            coerce_offsets([1, [2]])

    def test_offsets_require_a_list(self) -> None:
        with pytest.raises(SchemaError):
            coerce_offsets("4,8")

    def test_dropdown_from_newlines(self) -> None:
        assert coerce_dropdown("a\nb\r\nc\n") == ["a", "b", "c"]

    def test_dropdown_from_list(self) -> None:
        assert coerce_dropdown(["x", 1, True]) == ["x", "1", "true"]

    def test_dropdown_rejects_scalars(self) -> None:
        with pytest.raises(SchemaError):
            coerce_dropdown(5)


class TestScriptPayload:
    def test_plain_body(self) -> None:
        assert coerce_script_payload("[ENABLE]") == "[ENABLE]"

    def test_none_clears_the_script(self) -> None:
        assert coerce_script_payload(None) is None

    def test_replace_payload_defaults(self) -> None:
        payload = coerce_script_payload({"replace": "a", "with": "b"})
        assert payload == {"replace": "a", "with": "b", "mode": "plain", "count": 1, "all": False}

    def test_default_mode_is_used_when_absent(self) -> None:
        payload = coerce_script_payload({"replace": "a", "with": "b"}, default_mode="pattern")
        assert payload["mode"] == "pattern"

    @pytest.mark.parametrize(
        "value",
        [
            {"replace": "a"},
            {"with": "b"},
            {"replace": "a", "with": "b", "mode": "glob"},
            {"replace": "", "with": "b"},
            42,
        ],
    )
    def test_malformed_payload_is_schema_error(self, value: object) -> None:
        with pytest.raises(SchemaError):
            coerce_script_payload(value)

    @pytest.mark.parametrize("count", [0, -1, "2", True])
    def test_bad_count_is_coercion_error(self, count: object) -> None:
        with pytest.raises(CoercionError):
            coerce_script_payload({"replace": "a", "with": "b", "count": count})


class TestScriptReplace:
    @staticmethod
    def _payload(**overrides: object) -> dict:
        payload = {"replace": "a", "with": "b", "mode": "plain", "count": 1, "all": False}
        payload.update(overrides)
        return payload

    def test_replaces_first_occurrence_by_default(self) -> None:
        assert apply_script_replace("a a a", self._payload()) == "b a a"

    def test_count(self) -> None:
        assert apply_script_replace("a a a", self._payload(count=2)) == "b b a"

    def test_all(self) -> None:
        assert apply_script_replace("a a a", self._payload(all=True)) == "b b b"

    def test_plain_mode_is_literal(self) -> None:
        payload = self._payload(replace="1.0", **{"with": "\\2"})
        assert apply_script_replace("v1.0 v1x0", payload) == "v\\2 v1x0"

    def test_pattern_mode(self) -> None:
        payload = self._payload(replace=r"mov eax,(\d)", mode="pattern", **{"with": r"mov ebx,\1"})
        assert apply_script_replace("mov eax,1\n", payload) == "mov ebx,1\n"

    def test_missing_search_text(self) -> None:
        with pytest.raises(CoercionError, match="String not found"):
            apply_script_replace("xyz", self._payload())

    def test_invalid_pattern(self) -> None:
        with pytest.raises(SchemaError):
            apply_script_replace("xyz", self._payload(replace="(", mode="pattern"))


class TestDispatch:
    def test_any_passes_through(self) -> None:
        value = {"nested": [1]}
        assert coerce_value("any", value) is value

    def test_unknown_kind(self) -> None:
        with pytest.raises(SchemaError):
            coerce_value("weird", 1)

    def test_values_equal(self) -> None:
        assert values_equal("number", 1, 1)
        assert not values_equal("bool", True, 1)
        assert values_equal("offsets", None, [])
        assert not values_equal("offsets", [1, 2], [2, 1])
