"""Boundary adapter turning raw (possibly legacy) schema JSON into a ``Schema``.

Two historical representations of groups exist:

- nested: a ``group`` item carries its children in ``items``;
- flat: children are siblings of the group carrying ``parent_key`` equal to
  the group's ``key``.

Everything past this module works on the nested form only. When both forms
are present for one group the nested children are authoritative and flat
children are appended after them.

Reading never fails on malformed data: values of the wrong shape are coerced
(numbers to text, ``"yes"`` to ``True``, ``grid_2`` to ``GRID_2``) or dropped
so the model default applies.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Literal, Tuple, Type, Union, get_args, get_origin

from pydantic import BaseModel

from emr_templates.config import get_settings
from emr_templates.schemas.schema import (
    COLUMN_TYPES,
    ITEM_CLASSES,
    Option,
    Schema,
    Section,
    TableColumn,
    VisibilityRule,
)

logger = logging.getLogger(__name__)

# Legacy aliases seen in stored schemas
TYPE_ALIASES = {
    "checkbox": "boolean",
}

RULE_OPS: Tuple[str, ...] = get_args(VisibilityRule.model_fields["op"].annotation)

_TRUE_WORDS = ("true", "1", "yes", "y", "on")
_FALSE_WORDS = ("false", "0", "no", "n", "off", "")

# Marker for a value that cannot be coerced; the key is removed
_DROP = object()


def ensure_schema_shape(raw: Any) -> Dict[str, Any]:
    """Coerce anything into ``{schema_version, sections: [...]}``."""
    out = dict(raw) if isinstance(raw, dict) else {}
    version = _as_int(out.get("schema_version"))
    if version is _DROP or version < 1:
        version = get_settings().schema_version
    out["schema_version"] = version
    if not isinstance(out.get("sections"), list):
        out["sections"] = []
    return out


def _as_bool(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_WORDS:
            return True
        if text in _FALSE_WORDS:
            return False
    return _DROP


def _as_int(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return _DROP


def _coerce_value(annotation: Any, value: Any) -> Any:
    """``value`` made acceptable to ``annotation``, or ``_DROP`` to fall back to the default."""
    origin = get_origin(annotation)
    args = get_args(annotation)

    if origin is Union:
        if value is None and type(None) in args:
            return None
        options = [arg for arg in args if arg is not type(None)]
        # only Optional[X] is coerced; richer unions are left to the model
        return _coerce_value(options[0], value) if len(options) == 1 else value
    if origin is Literal:
        if value in args:
            return value
        lowered = str(value).strip().lower() if value is not None else None
        return lowered if lowered in args else _DROP
    if origin is list:
        if not isinstance(value, list):
            return _DROP
        out = [_coerce_value(args[0], v) for v in value] if args else list(value)
        return [v for v in out if v is not _DROP]

    if annotation is str:
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return _DROP
    if annotation is bool:
        return _as_bool(value)
    if annotation is int:
        return _as_int(value)
    if isinstance(annotation, type) and issubclass(annotation, Enum):
        try:
            return annotation(str(value).strip().upper())
        except ValueError:
            return _DROP
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return coerce_fields(annotation, value) if isinstance(value, dict) else _DROP
    return value


def coerce_fields(model: Type[BaseModel], raw: Dict[str, Any], skip: Tuple[str, ...] = ()) -> Dict[str, Any]:
    """Coerce the declared fields of ``raw`` to ``model``'s field types.

    Values that cannot be coerced are removed so the model default applies.
    Undeclared (legacy) keys pass through untouched.
    """
    out = dict(raw)
    for name, field in model.model_fields.items():
        key = field.alias or name
        if key in skip or key not in out:
            continue
        value = _coerce_value(field.annotation, out[key])
        if value is _DROP:
            logger.debug("Dropping unreadable %s.%s: %r", model.__name__, key, out[key])
            del out[key]
        else:
            out[key] = value
    return out


def _coerce_options(raw_options: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw_options, list):
        return []
    options = []
    for raw in raw_options:
        if isinstance(raw, dict):
            option = dict(raw)
        elif isinstance(raw, (str, int, float)) and not isinstance(raw, bool):
            option = {"value": raw, "label": raw}
        else:
            logger.warning("Dropping unreadable option: %r", raw)
            continue
        option = coerce_fields(Option, option)
        option.setdefault("value", option.get("label", ""))
        options.append(option)
    return options


def _coerce_rules(raw_rules: Any) -> Dict[str, Any]:
    if not isinstance(raw_rules, dict):
        return {}
    rules = dict(raw_rules)
    rule = rules.get("visible_when")
    if rule is None:
        return rules
    if not isinstance(rule, dict):
        logger.warning("Dropping unreadable visibility rule: %r", rule)
        rules.pop("visible_when")
        return rules
    rule = dict(rule)
    op = str(rule.get("op") or "eq").strip().lower()
    if op not in RULE_OPS:
        logger.warning("Dropping visibility rule with unsupported op %r", rule.get("op"))
        rules.pop("visible_when")
        return rules
    rule["op"] = op
    rules["visible_when"] = rule
    return rules


def _coerce_item(raw: Dict[str, Any]) -> Dict[str, Any]:
    item = dict(raw)
    item_type = str(item.get("type") or "text").strip().lower()
    item_type = TYPE_ALIASES.get(item_type, item_type)
    if item_type not in ITEM_CLASSES:
        logger.warning("Unknown item type %r for key %r, reading as text", item_type, item.get("key"))
        item_type = "text"
    item["type"] = item_type

    if item_type == "group":
        item["items"] = _coerce_items(item.get("items"))
    elif item_type == "table" and isinstance(item.get("table"), dict):
        table = dict(item["table"])
        columns = table.get("columns") if isinstance(table.get("columns"), list) else []
        table["columns"] = [_coerce_column(c) for c in columns if isinstance(c, dict)]
        item["table"] = table
    if "options" in item:
        item["options"] = _coerce_options(item["options"])

    if "rules" in item:
        item["rules"] = _coerce_rules(item["rules"])
    return coerce_fields(ITEM_CLASSES[item_type], item, skip=("type", "items"))


def _coerce_column(raw: Dict[str, Any]) -> Dict[str, Any]:
    column = dict(raw)
    col_type = str(column.get("type") or "text").strip().lower()
    column["type"] = col_type if col_type in COLUMN_TYPES else "text"
    if column.get("options") is not None:
        column["options"] = _coerce_options(column["options"])
    return coerce_fields(TableColumn, column, skip=("type",))


def _coerce_items(raw_items: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw_items, list):
        return []
    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            logger.warning("Dropping non-object item: %r", raw)
            continue
        items.append(_coerce_item(raw))
    return items


def nest_flat_children(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Move flat ``parent_key`` children into their group's ``items``."""
    group_keys = {
        it.get("key") for it in items if it.get("type") == "group" and it.get("key")
    }
    flat_children: Dict[str, List[Dict[str, Any]]] = {}
    top_level = []
    for item in items:
        parent_key = item.get("parent_key")
        if parent_key and parent_key in group_keys and item.get("key") != parent_key:
            child = {k: v for k, v in item.items() if k != "parent_key"}
            flat_children.setdefault(parent_key, []).append(child)
            continue
        if parent_key:
            logger.info("Orphan flat child %r (parent %r) kept at top level", item.get("key"), parent_key)
        top_level.append(item)

    if not flat_children:
        return items

    logger.info("Migrating %d legacy flat group(s) to nested form", len(flat_children))
    out = []
    for item in top_level:
        children = flat_children.get(item.get("key")) if item.get("type") == "group" else None
        if children:
            item = dict(item, items=list(item.get("items") or []) + children)
        out.append(item)
    return out


def load_schema(raw: Any) -> Schema:
    """Read raw schema JSON into the canonical nested ``Schema`` model."""
    if isinstance(raw, Schema):
        return raw
    shaped = ensure_schema_shape(raw)
    sections = []
    for raw_section in shaped["sections"]:
        if not isinstance(raw_section, dict):
            logger.warning("Dropping non-object section: %r", raw_section)
            continue
        section = coerce_fields(Section, raw_section, skip=("items",))
        section["items"] = nest_flat_children(_coerce_items(section.get("items")))
        sections.append(section)
    shaped["sections"] = sections
    return Schema.model_validate(shaped)
