"""Conditional-visibility evaluation for ``rules.visible_when``.

The comparison type comes from the rule's expected value:

- ``True``/``False``: the actual value counts as true only when it is ``True``;
- a number: the actual value is converted to a number, empty or unparsable
  values become NaN and therefore never equal;
- anything else: both sides are compared as strings, empty values as ``""``.

``neq`` negates the result. A rule without ``field_key`` never hides an item.
"""

import math
from typing import Any, Dict, Mapping, Optional

from emr_templates.schemas.schema import Schema, VisibilityRule
from emr_templates.services.schema_ops import walk_items


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _to_number(value: Any) -> float:
    if _is_empty(value):
        return math.nan
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return math.nan
    return math.nan


def _to_string(value: Any) -> str:
    if _is_empty(value):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _get_rule(item: Any) -> Optional[VisibilityRule]:
    if isinstance(item, Mapping):
        rules = item.get("rules")
        rule = rules.get("visible_when") if isinstance(rules, Mapping) else None
        if isinstance(rule, Mapping):
            return VisibilityRule.model_construct(
                field_key=rule.get("field_key"),
                op=rule.get("op", "eq"),
                value=rule.get("value", True),
            )
        return None
    rules = getattr(item, "rules", None)
    return getattr(rules, "visible_when", None)


def rule_matches(rule: VisibilityRule, values: Mapping[str, Any]) -> bool:
    if not rule.field_key:
        return True
    expected = rule.value
    actual = values.get(rule.field_key) if isinstance(values, Mapping) else None

    if isinstance(expected, bool):
        result = (actual is True) == expected
    elif isinstance(expected, (int, float)):
        # NaN never equals anything
        result = _to_number(actual) == float(expected)
    else:
        result = _to_string(actual) == _to_string(expected)

    return not result if rule.op == "neq" else result


def is_visible(item: Any, values: Mapping[str, Any]) -> bool:
    """Whether ``item`` is shown for the current form ``values``."""
    rule = _get_rule(item)
    if rule is None:
        return True
    return rule_matches(rule, values)


def evaluate_visibility(schema: Schema, values: Mapping[str, Any]) -> Dict[str, Dict[str, bool]]:
    """Per section code, the visibility of every keyed item.

    An item inside a hidden group is reported hidden as well.
    """
    result: Dict[str, Dict[str, bool]] = {}
    for section in schema.sections:
        flags: Dict[str, bool] = {}
        for item, parent in walk_items(section.items):
            if not item.key:
                continue
            shown = is_visible(item, values)
            if parent is not None and parent.key in flags:
                shown = shown and flags[parent.key]
            flags[item.key] = shown
        result[section.code] = flags
    return result
