"""Tests for the pure structural operations over the schema tree."""

import pytest

from emr_templates.schemas.schema import (
    FIELD_TYPES,
    BooleanItem,
    CalculationItem,
    ChartItem,
    ChoiceItem,
    GroupItem,
    TableItem,
    TextItem,
)
from emr_templates.services import schema_ops
from emr_templates.services.schema_reader import load_schema
from emr_templates.utils.normalization import ensure_editor_ids


def _section(schema, code):
    return next(sec for sec in schema.sections if sec.code == code)


class TestMoveItem:
    """List relocation."""

    def test_move_forward(self):
        assert schema_ops.move_item(["a", "b", "c"], 0, 2) == ["b", "c", "a"]

    def test_move_backward(self):
        assert schema_ops.move_item(["a", "b", "c"], 2, 0) == ["c", "a", "b"]

    @pytest.mark.parametrize("src,dst", [(-1, 0), (0, 3), (5, 1), (1, 1)])
    def test_out_of_range_or_same_is_noop(self, src, dst):
        items = ["a", "b", "c"]
        assert schema_ops.move_item(items, src, dst) is items

    def test_input_not_mutated(self):
        items = ["a", "b", "c"]
        schema_ops.move_item(items, 0, 1)
        assert items == ["a", "b", "c"]


class TestDefaults:
    """Default field and section construction."""

    @pytest.mark.parametrize("field_type", FIELD_TYPES)
    def test_every_type_constructs(self, field_type):
        item = schema_ops.make_default_field(field_type)
        assert item.type == field_type
        assert item.rid
        assert item.key

    def test_choice_gets_two_options(self):
        item = schema_ops.make_default_field("radio")
        assert isinstance(item, ChoiceItem)
        assert [o.value for o in item.options] == ["option_1", "option_2"]
        assert item.choice.allow_custom is False
        assert schema_ops.make_default_field("chips").choice.allow_custom is True

    def test_table_gets_two_columns(self):
        item = schema_ops.make_default_field("table")
        assert isinstance(item, TableItem)
        assert [c.key for c in item.table.columns] == ["col_1", "col_2"]
        assert all(c.rid for c in item.table.columns)

    def test_group_gets_one_child(self):
        item = schema_ops.make_default_field("group")
        assert isinstance(item, GroupItem)
        assert len(item.items) == 1
        assert isinstance(item.items[0], TextItem)

    def test_derived_types_are_readonly(self):
        assert isinstance(schema_ops.make_default_field("calculation"), CalculationItem)
        assert schema_ops.make_default_field("calculation").readonly is True
        assert isinstance(schema_ops.make_default_field("graph"), ChartItem)
        assert schema_ops.make_default_field("chart").readonly is True

    def test_boolean_defaults_false(self):
        item = schema_ops.make_default_field("checkbox")
        assert isinstance(item, BooleanItem)
        assert item.default_value is False

    def test_unknown_type_falls_back_to_text(self):
        assert schema_ops.make_default_field("hologram").type == "text"

    def test_default_section(self):
        section = schema_ops.make_default_section()
        assert section.code == "NEW_SECTION"
        assert section.rid
        assert schema_ops.make_default_section("review of systems").code == "REVIEW_OF_SYSTEMS"

    def test_preset_sections(self):
        sections = schema_ops.preset_sections("soap")
        assert sections[0].label == "Chief Complaint"
        assert sections[0].code == "CHIEF_COMPLAINT"
        assert len({s.rid for s in sections}) == len(sections)
        assert [s.label for s in schema_ops.preset_sections("unknown")] == schema_ops.DEFAULT_PRESET_SECTION_LABELS

    def test_pick_field_types(self):
        assert schema_ops.pick_field_types({"field_types": [{"code": "text"}, "number", ""]}) == ["text", "number"]
        assert schema_ops.pick_field_types({}, {"field_types": ["date"]}) == ["date"]
        assert schema_ops.pick_field_types() == list(FIELD_TYPES)


class TestSectionOps:
    """Section add/remove/move/patch with structural sharing."""

    def test_add_section(self, schema):
        out = schema_ops.add_section(schema)
        assert len(out.sections) == 3
        assert out.sections[0] is schema.sections[0]
        assert len(schema.sections) == 2

    def test_remove_section(self, schema):
        out = schema_ops.remove_section(schema, schema.sections[0].rid)
        assert [s.code for s in out.sections] == ["PLAN"]
        assert out.sections[0] is schema.sections[1]

    def test_remove_unknown_section_is_noop(self, schema):
        assert schema_ops.remove_section(schema, "nope") is schema

    def test_move_section(self, schema):
        out = schema_ops.move_section(schema, schema.sections[0].rid, 1)
        assert [s.code for s in out.sections] == ["PLAN", "VITALS"]
        assert schema_ops.move_section(schema, schema.sections[0].rid, -1) is schema

    def test_patch_section_normalizes_code(self, schema):
        section_id = schema.sections[0].rid
        out = schema_ops.patch_section(schema, section_id, code="vital signs", label="Vital Signs")
        assert out.sections[0].code == "VITAL_SIGNS"
        assert out.sections[0].label == "Vital Signs"
        assert all(new is old for new, old in zip(out.sections[0].items, schema.sections[0].items))
        assert out.sections[1] is schema.sections[1]

    def test_patch_section_same_values_is_noop(self, schema):
        section = schema.sections[0]
        assert schema_ops.patch_section(schema, section.rid, label=section.label) is schema

    def test_upsert_existing_by_normalized_code(self, schema):
        out, section_id = schema_ops.upsert_section(schema, "plan", "Plan")
        assert out is schema
        assert section_id == schema.sections[1].rid

    def test_upsert_relabels(self, schema):
        out, section_id = schema_ops.upsert_section(schema, "PLAN", "Care Plan")
        assert section_id == schema.sections[1].rid
        assert out.sections[1].label == "Care Plan"

    def test_upsert_creates(self, schema):
        out, section_id = schema_ops.upsert_section(schema, "implant details", "Implant Details")
        assert out.sections[-1].rid == section_id
        assert out.sections[-1].code == "IMPLANT_DETAILS"


class TestItemOps:
    """Item add/remove/move/patch."""

    def test_append_fields(self, schema):
        section = schema.sections[0]
        field = schema_ops.make_default_field("text")
        out = schema_ops.append_fields_to_section(schema, section.rid, [field])
        assert out.sections[0].items[-1] is field
        assert out.sections[0].items[0] is section.items[0]
        assert out.sections[1] is schema.sections[1]

    def test_append_to_unknown_section_is_noop(self, schema):
        field = schema_ops.make_default_field("text")
        assert schema_ops.append_fields_to_section(schema, "nope", [field]) is schema

    def test_append_nothing_is_noop(self, schema):
        assert schema_ops.append_fields_to_section(schema, schema.sections[0].rid, []) is schema

    def test_remove_item(self, schema):
        section = schema.sections[0]
        out = schema_ops.remove_item(schema, section.rid, section.items[0].rid)
        assert [it.key for it in out.sections[0].items] == ["febrile", "temperature"]

    def test_remove_unknown_item_is_noop(self, schema):
        assert schema_ops.remove_item(schema, schema.sections[0].rid, "nope") is schema

    def test_remove_group_takes_flat_descendants(self):
        items = ensure_editor_ids(load_schema({"sections": [{"code": "A", "items": [
            {"type": "group", "key": "g"},
            {"type": "text", "key": "loose", "parent_key": "elsewhere"},
        ]}]})).sections[0].items
        group = items[0]
        flat_child = TextItem(rid="c", key="child", parent_key="g")
        out = schema_ops.remove_item_and_descendants(list(items) + [flat_child], group.rid)
        assert [it.key for it in out] == ["loose"]

    def test_remove_non_group_only_removes_target(self):
        a = TextItem(rid="a", key="a")
        b = TextItem(rid="b", key="b", parent_key="a")
        assert schema_ops.remove_item_and_descendants([a, b], "a") == [b]

    def test_move_item_within_section(self, schema):
        section = schema.sections[0]
        out = schema_ops.move_item_within_section(schema, section.rid, section.items[0].rid, 2)
        assert [it.key for it in out.sections[0].items] == ["febrile", "temperature", "pulse"]
        assert schema_ops.move_item_within_section(schema, section.rid, section.items[0].rid, -1) is schema

    def test_reorder_items(self, schema):
        section = schema.sections[0]
        out = schema_ops.reorder_items(schema, section.rid, 2, 0)
        assert [it.key for it in out.sections[0].items] == ["temperature", "pulse", "febrile"]
        assert schema_ops.reorder_items(schema, section.rid, 0, 9) is schema

    def test_patch_item(self, schema):
        section = schema.sections[0]
        out = schema_ops.patch_item(schema, section.rid, section.items[0].rid, {"label": "Heart Rate", "required": True})
        patched = out.sections[0].items[0]
        assert patched.label == "Heart Rate"
        assert patched.required is True
        assert patched.rid == section.items[0].rid
        assert out.sections[0].items[1] is section.items[1]
        assert section.items[0].label == "Pulse"

    def test_patch_item_validates_nested_payload(self, schema):
        section = schema.sections[0]
        rule = {"visible_when": {"field_key": "febrile", "op": "neq", "value": True}}
        out = schema_ops.patch_item(schema, section.rid, section.items[0].rid, {"rules": rule})
        assert out.sections[0].items[0].rules.visible_when.op == "neq"

    def test_patch_item_type_change_switches_variant(self, schema):
        section = schema.sections[0]
        out = schema_ops.patch_item(schema, section.rid, section.items[0].rid, {"type": "boolean"})
        assert isinstance(out.sections[0].items[0], BooleanItem)

    def test_patch_item_same_values_is_noop(self, schema):
        section = schema.sections[0]
        assert schema_ops.patch_item(schema, section.rid, section.items[0].rid, {"label": "Pulse"}) is schema

    def test_patch_item_normalizes_key(self, schema):
        section = schema.sections[0]
        out = schema_ops.patch_item(schema, section.rid, section.items[0].rid, {"key": "Heart Rate (bpm)"})
        assert out.sections[0].items[0].key == "heart_rate_bpm_"
        assert schema_ops.patch_item(schema, section.rid, section.items[0].rid, {"key": "PULSE"}) is schema

    def test_patch_group_child(self, schema):
        plan = _section(schema, "PLAN")
        group = plan.items[0]
        child = group.items[0]
        out = schema_ops.patch_item(schema, plan.rid, child.rid, {"label": "Review date"}, parent_id=group.rid)
        assert _section(out, "PLAN").items[0].items[0].label == "Review date"
        assert _section(out, "PLAN").items[0].items[1] is group.items[1]
        assert _section(out, "PLAN").items[1] is plan.items[1]


class TestLookups:
    def test_collect_keys_includes_descendants(self, schema):
        assert schema_ops.collect_keys(_section(schema, "PLAN")) == ["follow_up", "follow_up_date", "meds", "disposition"]

    def test_find_item_returns_parent(self, schema):
        plan = _section(schema, "PLAN")
        child = plan.items[0].items[1]
        item, parent = schema_ops.find_item(plan, child.rid)
        assert item is child
        assert parent is plan.items[0]
        assert schema_ops.find_item(plan, "nope") == (None, None)

    def test_condition_candidates(self, schema):
        vitals = _section(schema, "VITALS")
        assert schema_ops.condition_candidates(vitals) == [{"key": "febrile", "label": "Febrile", "type": "boolean"}]
        keys = [c["key"] for c in schema_ops.condition_candidates(_section(schema, "PLAN"))]
        assert keys == ["disposition"]


class TestGroupOps:
    """Children of group items."""

    def test_add_child_to_group(self, schema):
        plan = _section(schema, "PLAN")
        group = plan.items[0]
        out, child_id = schema_ops.add_child_to_group(schema, plan.rid, group.rid, "number", "Days")
        children = _section(out, "PLAN").items[0].items
        assert children[-1].rid == child_id
        assert children[-1].key == "follow_up_number"
        assert children[-1].label == "Days"
        assert children[0] is group.items[0]

    def test_add_child_keys_stay_unique(self, schema):
        plan = _section(schema, "PLAN")
        group_id = plan.items[0].rid
        out, _ = schema_ops.add_child_to_group(schema, plan.rid, group_id, "text")
        out, _ = schema_ops.add_child_to_group(out, plan.rid, group_id, "text")
        keys = schema_ops.collect_keys(_section(out, "PLAN"))
        assert len(keys) == len(set(keys))
        assert "follow_up_text_2" in keys

    def test_add_child_to_non_group_is_noop(self, schema):
        plan = _section(schema, "PLAN")
        out, child_id = schema_ops.add_child_to_group(schema, plan.rid, plan.items[1].rid)
        assert out is schema
        assert child_id is None

    def test_remove_child(self, schema):
        plan = _section(schema, "PLAN")
        group = plan.items[0]
        out = schema_ops.remove_child_from_group(schema, plan.rid, group.rid, group.items[0].rid)
        assert [c.key for c in _section(out, "PLAN").items[0].items] == ["meds"]
        assert schema_ops.remove_child_from_group(schema, plan.rid, group.rid, "nope") is schema

    def test_move_child(self, schema):
        plan = _section(schema, "PLAN")
        group = plan.items[0]
        out = schema_ops.move_child_in_group(schema, plan.rid, group.rid, group.items[0].rid, 1)
        assert [c.key for c in _section(out, "PLAN").items[0].items] == ["meds", "follow_up_date"]
        assert schema_ops.move_child_in_group(schema, plan.rid, group.rid, group.items[0].rid, 5) is schema

    def test_remove_item_with_parent_id(self, schema):
        plan = _section(schema, "PLAN")
        group = plan.items[0]
        out = schema_ops.remove_item(schema, plan.rid, group.items[1].rid, parent_id=group.rid)
        assert [c.key for c in _section(out, "PLAN").items[0].items] == ["follow_up_date"]


class TestColumnOps:
    """Columns of table items."""

    @pytest.fixture
    def table(self, schema):
        return _section(schema, "PLAN").items[0].items[1]

    def test_add_column(self, table):
        out = schema_ops.add_column(table, "Dose", "number")
        assert [c.key for c in out.table.columns] == ["drug", "route", "dose"]
        assert out.table.columns[-1].type == "number"
        assert out.table.columns[0] is table.table.columns[0]
        assert len(table.table.columns) == 2

    def test_add_choice_column_gets_options(self, table):
        out = schema_ops.add_column(table, "Drug", "select")
        assert out.table.columns[-1].key == "drug_2"
        assert out.table.columns[-1].options == []

    def test_patch_column(self, table):
        column = table.table.columns[0]
        out = schema_ops.patch_column(table, column.rid, {"required": True})
        assert out.table.columns[0].required is True
        assert schema_ops.patch_column(table, column.rid, {"required": False}) is table
        assert schema_ops.patch_column(table, "nope", {"required": True}) is table

    def test_patch_column_normalizes_key(self, table):
        column = table.table.columns[0]
        changes = {"key": "Drug Name"}
        out = schema_ops.patch_column(table, column.rid, changes)
        assert out.table.columns[0].key == "drug_name"
        assert changes == {"key": "Drug Name"}
        assert schema_ops.patch_column(out, column.rid, {"key": " DRUG  name "}) is out

    def test_remove_column(self, table):
        out = schema_ops.remove_column(table, table.table.columns[0].rid)
        assert [c.key for c in out.table.columns] == ["route"]
        assert schema_ops.remove_column(table, "nope") is table

    def test_move_column(self, table):
        out = schema_ops.move_column(table, table.table.columns[1].rid, -1)
        assert [c.key for c in out.table.columns] == ["route", "drug"]
        assert schema_ops.move_column(table, table.table.columns[1].rid, 1) is table
