"""Editor identifiers, code/key normalization and editor-field stripping."""

import itertools
import re
import secrets
import time
from typing import Any, Iterable, List, Optional, Set

from pydantic import BaseModel

from emr_templates.schemas.schema import (
    EDITOR_ID_FIELD,
    EDITOR_PRIVATE_PREFIX,
    GroupItem,
    Schema,
    Section,
    TableItem,
)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_counter = itertools.count()

_WHITESPACE = re.compile(r"\s+")
_CODE_INVALID = re.compile(r"[^A-Z0-9_]")
_KEY_INVALID = re.compile(r"[^a-z0-9_]")
_REPEATED_UNDERSCORE = re.compile(r"_+")


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_id() -> str:
    """Process-local editor identifier: random prefix, counter and time suffix."""
    return "{}{}{}".format(
        secrets.token_hex(4),
        _to_base36(next(_counter)),
        _to_base36(time.time_ns() // 1_000_000)[-6:],
    )


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def normalize_code(value: Any) -> str:
    """Section/department/record-type code: ``[A-Z0-9_]`` only."""
    text = _as_text(value).strip().upper()
    text = _WHITESPACE.sub("_", text)
    return _CODE_INVALID.sub("", text)


def normalize_key(value: Any) -> str:
    """Field/column key: lowercase ``[a-z0-9_]`` with no repeated underscores."""
    text = _as_text(value).strip().lower()
    text = _WHITESPACE.sub("_", text)
    text = _KEY_INVALID.sub("_", text)
    return _REPEATED_UNDERSCORE.sub("_", text)


def unique_key(base: Any, taken_keys: Iterable[str]) -> str:
    """Normalized ``base``, suffixed ``_2``, ``_3``... until absent from ``taken_keys``."""
    taken: Set[str] = set(taken_keys)
    key = normalize_key(base) or "field"
    if key not in taken:
        return key
    i = 2
    while f"{key}_{i}" in taken:
        i += 1
    return f"{key}_{i}"


def uniq(values: Iterable[Any]) -> List[Any]:
    """Order-preserving de-duplication, dropping falsy values."""
    seen = set()
    out = []
    for value in values:
        if not value or value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


def derive_section_codes(schema: Any) -> List[str]:
    """Deduplicated, order-preserving section codes of a schema."""
    if isinstance(schema, Schema):
        return uniq(section.code for section in schema.sections)
    sections = schema.get("sections") if isinstance(schema, dict) else None
    if not isinstance(sections, list):
        return []
    return uniq(sec.get("code") for sec in sections if isinstance(sec, dict))


# ---------------------------------------------------------------------------
# Editor identifiers
# ---------------------------------------------------------------------------

def _with_id(node: BaseModel, update: Optional[dict] = None) -> BaseModel:
    changes = dict(update or {})
    if not node.rid:
        changes["rid"] = generate_id()
    return node.model_copy(update=changes) if changes else node


def _ensure_column_ids(item: TableItem) -> TableItem:
    columns = [_with_id(col) for col in item.table.columns]
    if all(new is old for new, old in zip(columns, item.table.columns)):
        return item
    return item.model_copy(update={"table": item.table.model_copy(update={"columns": columns})})


def ensure_item_ids(item):
    """Assign missing editor ids to an item and its children/columns."""
    update = {}
    if isinstance(item, GroupItem):
        children = [ensure_item_ids(child) for child in item.items]
        if any(new is not old for new, old in zip(children, item.items)):
            update["items"] = children
    elif isinstance(item, TableItem):
        with_columns = _ensure_column_ids(item)
        if with_columns is not item:
            update["table"] = with_columns.table
    return _with_id(item, update)


def ensure_section_ids(section: Section) -> Section:
    items = [ensure_item_ids(item) for item in section.items]
    update = {}
    if any(new is not old for new, old in zip(items, section.items)):
        update["items"] = items
    return _with_id(section, update)


def ensure_editor_ids(schema: Schema) -> Schema:
    """Return ``schema`` with an editor id on every node.

    Nodes that already carry one are reused as-is, so calling this on an
    already-assigned schema returns the very same object.
    """
    sections = [ensure_section_ids(section) for section in schema.sections]
    if all(new is old for new, old in zip(sections, schema.sections)):
        return schema
    return schema.model_copy(update={"sections": sections})


# ---------------------------------------------------------------------------
# Persistence cleanup
# ---------------------------------------------------------------------------

def is_editor_field(name: str) -> bool:
    return name == EDITOR_ID_FIELD or name.startswith(EDITOR_PRIVATE_PREFIX)


def strip_editor_fields(node: Any) -> Any:
    """Deep copy of a JSON-like value without editor-only keys.

    Pydantic models are dumped by alias first, so ``rid`` is seen as ``_rid``.
    """
    if isinstance(node, BaseModel):
        node = node.model_dump(by_alias=True, mode="json")
    if isinstance(node, (list, tuple)):
        return [strip_editor_fields(value) for value in node]
    if isinstance(node, dict):
        return {
            key: strip_editor_fields(value)
            for key, value in node.items()
            if not (isinstance(key, str) and is_editor_field(key))
        }
    return node
