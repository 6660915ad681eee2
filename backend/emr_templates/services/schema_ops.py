"""Pure structural operations over the schema tree.

Every function returns a new object along the changed path and reuses every
untouched subtree. When nothing changes the input object itself is returned,
so callers (and the builder store) can detect no-ops by identity.
"""

import logging
import secrets
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, TypeVar

from emr_templates.config import get_settings
from emr_templates.schemas.schema import (
    CHOICE_COLUMN_TYPES,
    CHOICE_TYPES,
    CONDITION_SOURCE_TYPES,
    FIELD_TYPES,
    ITEM_CLASSES,
    BaseItem,
    GroupItem,
    Option,
    Schema,
    Section,
    TableColumn,
    TableItem,
)
from emr_templates.utils.normalization import generate_id, normalize_code, normalize_key, unique_key

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

def make_default_section(code: Optional[str] = None) -> Section:
    """Empty section with a fresh editor id."""
    return Section(
        rid=generate_id(),
        code=normalize_code(code or get_settings().default_section_code),
    )


def make_default_column(index: int) -> TableColumn:
    return TableColumn(
        rid=generate_id(),
        key=normalize_key(f"col_{index}"),
        label=f"Column {index}",
    )


def make_default_field(field_type: str = "text") -> BaseItem:
    """Field of ``field_type`` seeded with a type-appropriate payload."""
    t = str(field_type or "text").lower()
    if t == "checkbox":
        t = "boolean"
    if t not in ITEM_CLASSES:
        logger.debug("Unknown field type %r, defaulting to text", t)
        t = "text"

    base: Dict[str, Any] = {
        "rid": generate_id(),
        "type": t,
        "key": normalize_key(f"field_{secrets.token_hex(3)}"),
        "label": "New Field",
    }
    if t in CHOICE_TYPES:
        base["options"] = [
            Option(value="option_1", label="Option 1"),
            Option(value="option_2", label="Option 2"),
        ]
        base["choice"] = {"allow_custom": t == "chips", "display": "LIST"}
    elif t == "table":
        base["table"] = {"columns": [make_default_column(1), make_default_column(2)]}
    elif t == "group":
        base["items"] = [make_default_field("text")]

    return ITEM_CLASSES[t](**base)


def preset_sections(kind: str) -> List[Section]:
    """Section outline for a named clinical note preset."""
    labels = PRESET_SECTION_LABELS.get(str(kind or "").upper(), DEFAULT_PRESET_SECTION_LABELS)
    sections = []
    for label in labels:
        section = make_default_section(label)
        sections.append(section.model_copy(update={"label": label}))
    return sections


PRESET_SECTION_LABELS = {
    "SOAP": [
        "Chief Complaint",
        "Vitals",
        "History of Present Illness",
        "Past / Family / Social History",
        "Allergies",
        "Medication History",
        "Examination",
        "Assessment / Diagnosis",
        "Plan",
        "Prescription",
        "Investigations / Orders",
        "Advice & Follow-up",
    ],
    "IPD_PROGRESS": [
        "Vitals",
        "Intake / Output",
        "Overnight Events",
        "Focused Examination",
        "Assessment / Diagnosis",
        "Current Medications",
        "Investigations / Results",
        "Plan",
        "Orders",
        "Nursing Notes",
    ],
    "DISCHARGE": [
        "Admission Details",
        "Final Diagnosis",
        "Hospital Course / Summary",
        "Procedures",
        "Investigations",
        "Discharge Medications",
        "Instructions",
        "Follow-up",
        "Warning Signs",
    ],
    "NURSING": [
        "Triage / Vitals",
        "Pain Score",
        "Allergies",
        "IV Fluids / Lines",
        "Medication Administration",
        "Nursing Notes",
        "Patient Education",
        "Shift Handover",
    ],
}
DEFAULT_PRESET_SECTION_LABELS = ["Chief Complaint", "History", "Exam", "Assessment", "Plan"]


def pick_field_types(builder_meta: Optional[dict] = None, presets: Optional[dict] = None) -> List[str]:
    """Field types offered by the builder: server meta, then presets, then the built-in list."""

    def normalize(values) -> List[str]:
        if not isinstance(values, list):
            return []
        out = []
        for value in values:
            if isinstance(value, dict):
                value = value.get("code") or value.get("type") or value.get("value") or ""
            value = str(value or "").strip()
            if value:
                out.append(value)
        return out

    from_meta = normalize((builder_meta or {}).get("field_types"))
    if from_meta:
        return from_meta
    from_presets = normalize((presets or {}).get("field_types"))
    if from_presets:
        return from_presets
    return list(FIELD_TYPES)


# ---------------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------------

def move_item(items: Sequence[T], from_index: int, to_index: int) -> Sequence[T]:
    """Relocate one element; out-of-range indices return the input unchanged."""
    size = len(items)
    if not (0 <= from_index < size and 0 <= to_index < size) or from_index == to_index:
        return items
    out = list(items)
    out.insert(to_index, out.pop(from_index))
    return out


def _index_of(nodes: Sequence[Any], node_id: Optional[str]) -> int:
    if not node_id:
        return -1
    for i, node in enumerate(nodes):
        if node.rid == node_id:
            return i
    return -1


def _replace_at(nodes: Sequence[T], index: int, node: T) -> List[T]:
    out = list(nodes)
    out[index] = node
    return out


def _patched(node, changes: Dict[str, Any]):
    """Copy of ``node`` with ``changes`` validated in; untouched sub-models are reused."""
    data = dict(node)
    data.update(changes)
    cls = type(node)
    if isinstance(node, BaseItem):
        cls = ITEM_CLASSES.get(str(data.get("type")), cls)
    return cls.model_validate(data)


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------

def walk_items(items: Sequence[BaseItem], parent: Optional[GroupItem] = None) -> Iterator[Tuple[BaseItem, Optional[GroupItem]]]:
    """Depth-first ``(item, parent_group)`` pairs."""
    for item in items:
        yield item, parent
        if isinstance(item, GroupItem):
            yield from walk_items(item.items, item)


def collect_keys(section: Section) -> List[str]:
    """Keys of every item in a section, group descendants included."""
    return [item.key for item, _ in walk_items(section.items) if item.key]


def find_section(schema: Schema, section_id: Optional[str]) -> Optional[Section]:
    index = _index_of(schema.sections, section_id)
    return schema.sections[index] if index >= 0 else None


def find_item(section: Section, item_id: Optional[str]) -> Tuple[Optional[BaseItem], Optional[GroupItem]]:
    """``(item, parent_group)`` for an editor id anywhere in the section."""
    if not item_id:
        return None, None
    for item, parent in walk_items(section.items):
        if item.rid == item_id:
            return item, parent
    return None, None


def condition_candidates(section: Section) -> List[Dict[str, str]]:
    """Items a ``visible_when`` rule may reference inside this section."""
    return [
        {"key": item.key, "label": item.label or item.key, "type": item.type}
        for item, _ in walk_items(section.items)
        if item.key and item.type in CONDITION_SOURCE_TYPES
    ]


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def _with_sections(schema: Schema, sections: List[Section]) -> Schema:
    return schema.model_copy(update={"sections": sections})


def add_section(schema: Schema, section: Optional[Section] = None) -> Schema:
    return _with_sections(schema, list(schema.sections) + [section or make_default_section()])


def remove_section(schema: Schema, section_id: str) -> Schema:
    index = _index_of(schema.sections, section_id)
    if index < 0:
        return schema
    return _with_sections(schema, schema.sections[:index] + schema.sections[index + 1:])


def move_section(schema: Schema, section_id: str, delta: int) -> Schema:
    index = _index_of(schema.sections, section_id)
    if index < 0:
        return schema
    moved = move_item(schema.sections, index, index + delta)
    return schema if moved is schema.sections else _with_sections(schema, list(moved))


def patch_section(schema: Schema, section_id: str, **changes: Any) -> Schema:
    index = _index_of(schema.sections, section_id)
    if index < 0 or not changes:
        return schema
    section = schema.sections[index]
    if "code" in changes:
        changes["code"] = normalize_code(changes["code"])
    if all(getattr(section, name, None) == value for name, value in changes.items()):
        return schema
    return _with_sections(schema, _replace_at(schema.sections, index, _patched(section, changes)))


def upsert_section(schema: Schema, code: str, label: str = "") -> Tuple[Schema, str]:
    """Locate a section by normalized code (relabelling it) or append a new one."""
    want = normalize_code(code)
    for index, section in enumerate(schema.sections):
        if normalize_code(section.code) == want:
            new_label = label or section.label
            if section.code == want and section.label == new_label and section.rid:
                return schema, section.rid
            updated = section.model_copy(
                update={"code": want, "label": new_label, "rid": section.rid or generate_id()}
            )
            return _with_sections(schema, _replace_at(schema.sections, index, updated)), updated.rid
    section = make_default_section(want).model_copy(update={"label": label})
    return add_section(schema, section), section.rid


def _update_section_items(schema: Schema, section_id: str, fn) -> Schema:
    index = _index_of(schema.sections, section_id)
    if index < 0:
        return schema
    section = schema.sections[index]
    items = fn(section.items)
    if items is section.items:
        return schema
    updated = section.model_copy(update={"items": list(items)})
    return _with_sections(schema, _replace_at(schema.sections, index, updated))


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

def append_fields_to_section(schema: Schema, section_id: str, fields: Sequence[BaseItem]) -> Schema:
    """Append ``fields`` to a section; unknown section id is a no-op."""
    if not fields:
        return schema
    return _update_section_items(schema, section_id, lambda items: list(items) + list(fields))


def add_item(schema: Schema, section_id: str, item: BaseItem) -> Schema:
    return append_fields_to_section(schema, section_id, [item])


def remove_item_and_descendants(items: Sequence[BaseItem], item_id: str) -> Sequence[BaseItem]:
    """Drop the item; for a group also drop flat siblings pointing at it via ``parent_key``."""
    index = _index_of(items, item_id)
    if index < 0:
        return items
    target = items[index]
    if isinstance(target, GroupItem) and target.key:
        return [it for it in items if it.rid != item_id and it.parent_key != target.key]
    return [it for it in items if it.rid != item_id]


def _update_group(items: Sequence[BaseItem], group_id: str, fn) -> Sequence[BaseItem]:
    index = _index_of(items, group_id)
    if index < 0 or not isinstance(items[index], GroupItem):
        return items
    group = items[index]
    children = fn(group)
    if children is group.items:
        return items
    return _replace_at(items, index, group.model_copy(update={"items": list(children)}))


def remove_item(schema: Schema, section_id: str, item_id: str, parent_id: Optional[str] = None) -> Schema:
    if parent_id:
        return remove_child_from_group(schema, section_id, parent_id, item_id)
    return _update_section_items(schema, section_id, lambda items: remove_item_and_descendants(items, item_id))


def move_item_within_section(schema: Schema, section_id: str, item_id: str, delta: int) -> Schema:
    def move(items):
        index = _index_of(items, item_id)
        return items if index < 0 else move_item(items, index, index + delta)

    return _update_section_items(schema, section_id, move)


def reorder_items(schema: Schema, section_id: str, from_index: int, to_index: int) -> Schema:
    """Drag-and-drop reorder by position."""
    return _update_section_items(schema, section_id, lambda items: move_item(items, from_index, to_index))


def _with_normalized_key(changes: Dict[str, Any]) -> Dict[str, Any]:
    if "key" not in changes:
        return changes
    return dict(changes, key=normalize_key(changes["key"]))


def patch_item(
    schema: Schema,
    section_id: str,
    item_id: str,
    changes: Dict[str, Any],
    parent_id: Optional[str] = None,
) -> Schema:
    """Shallow-merge ``changes`` into an item (or a group child when ``parent_id`` is given)."""
    if not changes:
        return schema
    changes = _with_normalized_key(changes)

    def patch(items):
        index = _index_of(items, item_id)
        if index < 0:
            return items
        item = items[index]
        if all(getattr(item, name, None) == value for name, value in changes.items()):
            return items
        return _replace_at(items, index, _patched(item, changes))

    if parent_id:
        return _update_section_items(
            schema, section_id, lambda items: _update_group(items, parent_id, lambda g: patch(g.items))
        )
    return _update_section_items(schema, section_id, patch)


# ---------------------------------------------------------------------------
# Group children
# ---------------------------------------------------------------------------

def add_child_to_group(
    schema: Schema,
    section_id: str,
    group_id: str,
    field_type: str = "text",
    label: str = "Value",
) -> Tuple[Schema, Optional[str]]:
    """Append a new child to a group; returns the schema and the child's id."""
    section = find_section(schema, section_id)
    group, _ = find_item(section, group_id) if section else (None, None)
    if not isinstance(group, GroupItem):
        return schema, None

    child = make_default_field(field_type)
    key = unique_key(f"{normalize_key(group.key or 'group')}_{child.type}", collect_keys(section))
    child = child.model_copy(update={"label": label, "key": key})
    updated = _update_section_items(
        schema, section_id, lambda items: _update_group(items, group_id, lambda g: list(g.items) + [child])
    )
    return updated, child.rid


def remove_child_from_group(schema: Schema, section_id: str, group_id: str, child_id: str) -> Schema:
    def remove(group: GroupItem):
        index = _index_of(group.items, child_id)
        return group.items if index < 0 else group.items[:index] + group.items[index + 1:]

    return _update_section_items(schema, section_id, lambda items: _update_group(items, group_id, remove))


def move_child_in_group(schema: Schema, section_id: str, group_id: str, child_id: str, delta: int) -> Schema:
    def move(group: GroupItem):
        index = _index_of(group.items, child_id)
        return group.items if index < 0 else move_item(group.items, index, index + delta)

    return _update_section_items(schema, section_id, lambda items: _update_group(items, group_id, move))


# ---------------------------------------------------------------------------
# Table columns
# ---------------------------------------------------------------------------

def _with_columns(item: TableItem, columns: Sequence[TableColumn]) -> TableItem:
    if columns is item.table.columns:
        return item
    return item.model_copy(update={"table": item.table.model_copy(update={"columns": list(columns)})})


def add_column(item: TableItem, label: Optional[str] = None, column_type: str = "text") -> TableItem:
    column = make_default_column(len(item.table.columns) + 1)
    taken = [c.key for c in item.table.columns]
    update = {"key": unique_key(label or column.key, taken), "type": column_type}
    if label:
        update["label"] = label
    if column_type in CHOICE_COLUMN_TYPES:
        update["options"] = []
    return _with_columns(item, list(item.table.columns) + [column.model_copy(update=update)])


def patch_column(item: TableItem, column_id: str, changes: Dict[str, Any]) -> TableItem:
    index = _index_of(item.table.columns, column_id)
    if index < 0 or not changes:
        return item
    changes = _with_normalized_key(changes)
    column = item.table.columns[index]
    if all(getattr(column, name, None) == value for name, value in changes.items()):
        return item
    return _with_columns(item, _replace_at(item.table.columns, index, _patched(column, changes)))


def remove_column(item: TableItem, column_id: str) -> TableItem:
    index = _index_of(item.table.columns, column_id)
    if index < 0:
        return item
    columns = item.table.columns
    return _with_columns(item, columns[:index] + columns[index + 1:])


def move_column(item: TableItem, column_id: str, delta: int) -> TableItem:
    index = _index_of(item.table.columns, column_id)
    if index < 0:
        return item
    return _with_columns(item, move_item(item.table.columns, index, index + delta))
