"""Tests for reading raw and legacy schema JSON."""

import logging

from emr_templates.schemas.schema import BooleanItem, ChoiceItem, GroupItem, SectionLayout, TableItem, TextItem
from emr_templates.services.schema_reader import ensure_schema_shape, load_schema, nest_flat_children


class TestEnsureSchemaShape:
    """Malformed input is coerced, never rejected."""

    def test_non_object(self):
        assert ensure_schema_shape(None) == {"schema_version": 1, "sections": []}
        assert ensure_schema_shape([1, 2]) == {"schema_version": 1, "sections": []}
        assert ensure_schema_shape("schema") == {"schema_version": 1, "sections": []}

    def test_non_list_sections(self):
        assert ensure_schema_shape({"sections": {"a": 1}})["sections"] == []

    def test_existing_version_kept(self):
        assert ensure_schema_shape({"schema_version": 3, "sections": []})["schema_version"] == 3

    def test_default_version_from_settings(self, monkeypatch):
        monkeypatch.setenv("EMR_TEMPLATES_SCHEMA_VERSION", "2")
        assert ensure_schema_shape({})["schema_version"] == 2

    def test_input_not_mutated(self):
        raw = {"sections": "bad"}
        ensure_schema_shape(raw)
        assert raw == {"sections": "bad"}


class TestLoadSchema:
    """Raw JSON into the canonical model."""

    def test_variants_resolved_by_type(self, raw_schema):
        schema = load_schema(raw_schema)
        vitals, plan = schema.sections
        assert isinstance(vitals.items[1], BooleanItem)
        group = plan.items[0]
        assert isinstance(group, GroupItem)
        assert isinstance(group.items[1], TableItem)
        assert isinstance(plan.items[1], ChoiceItem)
        assert [o.value for o in plan.items[1].options] == ["home", "ward"]

    def test_rule_parsed(self, raw_schema):
        temperature = load_schema(raw_schema).sections[0].items[2]
        rule = temperature.rules.visible_when
        assert rule.field_key == "febrile"
        assert rule.op == "eq"
        assert rule.value is True

    def test_checkbox_alias(self):
        schema = load_schema({"sections": [{"code": "A", "items": [{"type": "checkbox", "key": "ok"}]}]})
        assert isinstance(schema.sections[0].items[0], BooleanItem)

    def test_unknown_type_read_as_text(self, caplog):
        with caplog.at_level(logging.WARNING, logger="emr_templates"):
            schema = load_schema({"sections": [{"code": "A", "items": [{"type": "hologram", "key": "h"}]}]})
        assert isinstance(schema.sections[0].items[0], TextItem)
        assert "hologram" in caplog.text

    def test_non_object_nodes_dropped(self):
        schema = load_schema({"sections": [None, "x", {"code": "A", "items": [1, {"type": "text", "key": "a"}]}]})
        assert len(schema.sections) == 1
        assert [it.key for it in schema.sections[0].items] == ["a"]

    def test_unknown_keys_survive(self):
        schema = load_schema({"sections": [{"code": "A", "custom_flag": 1, "items": [{"type": "text", "key": "a", "legacy": "x"}]}]})
        dumped = schema.model_dump(by_alias=True)
        assert dumped["sections"][0]["custom_flag"] == 1
        assert dumped["sections"][0]["items"][0]["legacy"] == "x"

    def test_unknown_column_type_read_as_text(self):
        raw = {"sections": [{"code": "A", "items": [
            {"type": "table", "key": "t", "table": {"columns": [{"key": "c", "type": "signature"}, "bad"]}},
        ]}]}
        columns = load_schema(raw).sections[0].items[0].table.columns
        assert [(c.key, c.type) for c in columns] == [("c", "text")]

    def test_schema_instance_passthrough(self, schema):
        assert load_schema(schema) is schema

    def test_empty(self):
        schema = load_schema(None)
        assert schema.schema_version == 1
        assert schema.sections == []


class TestNestFlatChildren:
    """Legacy flat groups are normalized to the nested form."""

    def test_flat_children_moved_into_group(self):
        items = [
            {"type": "group", "key": "cement", "items": []},
            {"type": "text", "key": "brand", "parent_key": "cement"},
            {"type": "text", "key": "other"},
        ]
        out = nest_flat_children(items)
        assert [it["key"] for it in out] == ["cement", "other"]
        assert out[0]["items"] == [{"type": "text", "key": "brand"}]

    def test_nested_children_stay_first(self):
        items = [
            {"type": "group", "key": "g", "items": [{"type": "text", "key": "nested"}]},
            {"type": "text", "key": "flat", "parent_key": "g"},
        ]
        out = nest_flat_children(items)
        assert [child["key"] for child in out[0]["items"]] == ["nested", "flat"]

    def test_orphans_kept_top_level(self, caplog):
        items = [{"type": "text", "key": "lost", "parent_key": "missing"}]
        with caplog.at_level(logging.INFO, logger="emr_templates"):
            out = nest_flat_children(items)
        assert out is items
        assert "Orphan" in caplog.text

    def test_no_flat_children_is_identity(self):
        items = [{"type": "text", "key": "a"}]
        assert nest_flat_children(items) is items

    def test_load_schema_migrates_flat_groups(self):
        raw = {"sections": [{"code": "A", "items": [
            {"type": "group", "key": "g"},
            {"type": "boolean", "key": "b", "parent_key": "g"},
        ]}]}
        section = load_schema(raw).sections[0]
        assert len(section.items) == 1
        child = section.items[0].items[0]
        assert child.key == "b"
        assert child.parent_key is None


def _single_item(raw_item, **section):
    schema = load_schema({"sections": [dict({"code": "A", "items": [raw_item]}, **section)]})
    return schema.sections[0].items[0]


class TestMalformedValues:
    """Wrong-typed legacy values are coerced or defaulted instead of raising."""

    def test_numeric_option_values_become_text(self):
        item = _single_item({"type": "radio", "key": "grade", "options": [{"value": 1, "label": 2}, 3]})
        assert [(o.value, o.label) for o in item.options] == [("1", "2"), ("3", "3")]

    def test_option_without_value_uses_label(self):
        item = _single_item({"type": "select", "key": "s", "options": [{"label": "Home"}, None]})
        assert [(o.value, o.label) for o in item.options] == [("Home", "Home")]

    def test_null_text_fields_take_defaults(self):
        item = _single_item({"type": "text", "key": None, "label": None, "placeholder": None})
        assert item.key == ""
        assert item.label == ""
        assert item.placeholder == ""

    def test_wrong_typed_flags(self):
        item = _single_item({"type": "boolean", "key": "b", "required": "yes", "readonly": "maybe"})
        assert item.required is True
        assert item.readonly is False

    def test_unknown_section_layout_falls_back_to_stack(self):
        schema = load_schema({"sections": [{"code": "A", "layout": "GRID_9", "label": None}]})
        assert schema.sections[0].layout == SectionLayout.STACK
        assert schema.sections[0].label == ""

    def test_lowercase_layout_accepted(self):
        schema = load_schema({"sections": [{"code": "A", "layout": "grid_2"}]})
        assert schema.sections[0].layout == SectionLayout.GRID_2

    def test_upper_case_op_lowered(self):
        item = _single_item({
            "type": "text",
            "key": "t",
            "rules": {"visible_when": {"field_key": "b", "op": "NEQ", "value": True}},
        })
        assert item.rules.visible_when.op == "neq"

    def test_unsupported_op_drops_rule(self, caplog):
        with caplog.at_level(logging.WARNING, logger="emr_templates"):
            item = _single_item({
                "type": "text",
                "key": "t",
                "rules": {"visible_when": {"field_key": "b", "op": "gt", "value": 3}, "max_length": 20},
            })
        assert item.rules.visible_when is None
        assert item.rules.model_extra["max_length"] == 20
        assert "unsupported op" in caplog.text

    def test_bad_nested_config_defaults(self):
        item = _single_item({"type": "group", "key": "g", "group": "wide", "items": []})
        assert item.group.layout == SectionLayout.STACK
        table = _single_item({
            "type": "table",
            "key": "meds",
            "table": {"min_rows": "2", "max_rows": None, "columns": [{"key": 7, "type": "SELECT", "options": ["iv"]}]},
        })
        assert table.table.min_rows == 2
        assert table.table.max_rows == 0
        column = table.table.columns[0]
        assert (column.key, column.type) == ("7", "select")
        assert [o.value for o in column.options] == ["iv"]

    def test_numeric_key_and_parent_key_still_nest(self):
        schema = load_schema({"sections": [{"code": "A", "items": [
            {"type": "group", "key": 5},
            {"type": "text", "key": "child", "parent_key": 5},
        ]}]})
        group = schema.sections[0].items[0]
        assert group.key == "5"
        assert [c.key for c in group.items] == ["child"]

    def test_string_schema_version(self):
        assert load_schema({"schema_version": "3", "sections": []}).schema_version == 3
        assert load_schema({"schema_version": "latest", "sections": []}).schema_version == 1
