"""Builder session state and the actions the editor dispatches against it."""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from emr_templates.schemas.schema import Schema
from emr_templates.services import schema_ops
from emr_templates.services.presets import get_pack
from emr_templates.services.schema_reader import load_schema
from emr_templates.store import SelectorStore
from emr_templates.utils.normalization import derive_section_codes, ensure_editor_ids, unique_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuilderState:
    """The schema being edited plus what the editor has selected."""
    schema: Schema
    selected_section_id: Optional[str] = None
    selected_item_id: Optional[str] = None
    selected_group_parent_id: Optional[str] = None


def create_builder_store(raw_schema: Any = None) -> SelectorStore[BuilderState]:
    """Open an editing session on a raw or loaded schema."""
    schema = ensure_editor_ids(load_schema(raw_schema))
    first = schema.sections[0].rid if schema.sections else None
    return SelectorStore(BuilderState(schema=schema, selected_section_id=first))


def _with_schema(state: BuilderState, schema: Schema, **selection: Any) -> BuilderState:
    if schema is state.schema and not selection:
        return state
    return replace(state, schema=schema, **selection)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def select_section(state: BuilderState, section_id: Optional[str]) -> BuilderState:
    if (state.selected_section_id, state.selected_item_id, state.selected_group_parent_id) == (section_id, None, None):
        return state
    return replace(state, selected_section_id=section_id, selected_item_id=None, selected_group_parent_id=None)


def select_item(
    state: BuilderState,
    section_id: str,
    item_id: Optional[str],
    parent_id: Optional[str] = None,
) -> BuilderState:
    if (state.selected_section_id, state.selected_item_id, state.selected_group_parent_id) == (section_id, item_id, parent_id):
        return state
    return replace(state, selected_section_id=section_id, selected_item_id=item_id, selected_group_parent_id=parent_id)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def add_section(state: BuilderState) -> BuilderState:
    section = schema_ops.make_default_section()
    return _with_schema(
        state,
        schema_ops.add_section(state.schema, section),
        selected_section_id=section.rid,
        selected_item_id=None,
        selected_group_parent_id=None,
    )


def delete_section(state: BuilderState, section_id: str) -> BuilderState:
    schema = schema_ops.remove_section(state.schema, section_id)
    if schema is state.schema:
        return state
    first = schema.sections[0].rid if schema.sections else None
    return _with_schema(state, schema, selected_section_id=first, selected_item_id=None, selected_group_parent_id=None)


def move_section(state: BuilderState, section_id: str, delta: int) -> BuilderState:
    return _with_schema(state, schema_ops.move_section(state.schema, section_id, delta))


def patch_selected_section(state: BuilderState, **changes: Any) -> BuilderState:
    if not state.selected_section_id:
        return state
    return _with_schema(state, schema_ops.patch_section(state.schema, state.selected_section_id, **changes))


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

def add_field(state: BuilderState, field_type: str = "text") -> BuilderState:
    """Append a default field to the selected section and select it."""
    section = schema_ops.find_section(state.schema, state.selected_section_id)
    if section is None:
        return state
    item = schema_ops.make_default_field(field_type)
    item = item.model_copy(update={"key": unique_key(item.key, schema_ops.collect_keys(section))})
    schema = schema_ops.add_item(state.schema, section.rid, item)
    return _with_schema(state, schema, selected_item_id=item.rid, selected_group_parent_id=None)


def delete_item(state: BuilderState, section_id: str, item_id: str, parent_id: Optional[str] = None) -> BuilderState:
    schema = schema_ops.remove_item(state.schema, section_id, item_id, parent_id)
    if schema is state.schema:
        return state
    return _with_schema(state, schema, selected_item_id=None, selected_group_parent_id=None)


def move_item(state: BuilderState, section_id: str, item_id: str, delta: int) -> BuilderState:
    return _with_schema(state, schema_ops.move_item_within_section(state.schema, section_id, item_id, delta))


def drop_item(state: BuilderState, section_id: str, from_index: int, to_index: int) -> BuilderState:
    return _with_schema(state, schema_ops.reorder_items(state.schema, section_id, from_index, to_index))


def patch_selected_item(state: BuilderState, changes: Dict[str, Any]) -> BuilderState:
    if not (state.selected_section_id and state.selected_item_id):
        return state
    schema = schema_ops.patch_item(
        state.schema,
        state.selected_section_id,
        state.selected_item_id,
        changes,
        parent_id=state.selected_group_parent_id,
    )
    return _with_schema(state, schema)


def apply_pack(state: BuilderState, pack_id: str) -> BuilderState:
    """Splice a clinical preset pack into the schema and focus its section."""
    pack = get_pack(pack_id)
    if pack is None:
        logger.debug("Unknown preset pack %r", pack_id)
        return state
    result = pack.apply(state.schema)
    focus = result.focus_section_id or state.selected_section_id
    if focus is None and result.schema.sections:
        focus = result.schema.sections[0].rid
    return _with_schema(
        state,
        result.schema,
        selected_section_id=focus,
        selected_item_id=None,
        selected_group_parent_id=None,
    )


# ---------------------------------------------------------------------------
# Group children
# ---------------------------------------------------------------------------

def add_child_to_group(state: BuilderState, group_id: str, field_type: str = "text", label: str = "Value") -> BuilderState:
    if not state.selected_section_id:
        return state
    schema, child_id = schema_ops.add_child_to_group(
        state.schema, state.selected_section_id, group_id, field_type, label
    )
    if child_id is None:
        return state
    return _with_schema(state, schema, selected_item_id=child_id, selected_group_parent_id=group_id)


def delete_child(state: BuilderState, group_id: str, child_id: str) -> BuilderState:
    if not state.selected_section_id:
        return state
    schema = schema_ops.remove_child_from_group(state.schema, state.selected_section_id, group_id, child_id)
    if schema is state.schema:
        return state
    if state.selected_item_id == child_id and state.selected_group_parent_id == group_id:
        return _with_schema(state, schema, selected_item_id=group_id, selected_group_parent_id=None)
    return _with_schema(state, schema)


def move_child(state: BuilderState, group_id: str, child_id: str, delta: int) -> BuilderState:
    if not state.selected_section_id:
        return state
    return _with_schema(
        state,
        schema_ops.move_child_in_group(state.schema, state.selected_section_id, group_id, child_id, delta),
    )


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------

def select_section_rows(state: BuilderState) -> Tuple[Tuple[str, str, str], ...]:
    """``(id, code, label)`` per section; compare with ``value_equals``."""
    return tuple((sec.rid or "", sec.code or "SECTION", sec.label or "") for sec in state.schema.sections)


def select_selection(state: BuilderState) -> Dict[str, Any]:
    """Schema plus selection ids; compare with ``shallow_equal``."""
    return {
        "schema": state.schema,
        "selected_section_id": state.selected_section_id,
        "selected_item_id": state.selected_item_id,
        "selected_group_parent_id": state.selected_group_parent_id,
    }


def select_section_codes(state: BuilderState) -> List[str]:
    return derive_section_codes(state.schema)


def select_condition_candidates(state: BuilderState) -> List[Dict[str, str]]:
    section = schema_ops.find_section(state.schema, state.selected_section_id)
    return schema_ops.condition_candidates(section) if section else []
