"""Clinical quick-add packs that splice ready-made fields into a schema.

Each pack locates (or creates) its section by normalized code and appends a
fixed set of fields to it. Re-applying a pack appends another copy; keys that
would collide with existing ones in the section get ``_2``, ``_3``... suffixes
and the copy's own ``visible_when`` references follow the renamed keys.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence

from emr_templates.schemas.schema import (
    CHOICE_COLUMN_TYPES,
    BaseItem,
    GroupItem,
    Option,
    Schema,
    TableColumn,
    VisibilityRule,
)
from emr_templates.services import schema_ops
from emr_templates.utils.normalization import generate_id, normalize_key, unique_key

logger = logging.getLogger(__name__)


class PackResult(NamedTuple):
    schema: Schema
    focus_section_id: Optional[str]


@dataclass(frozen=True)
class PresetPack:
    id: str
    label: str
    section_code: str
    section_label: str
    build: Callable[[], List[BaseItem]]

    def apply(self, schema: Schema) -> PackResult:
        """Append this pack's fields to its section (created when missing)."""
        schema, section_id = schema_ops.upsert_section(schema, self.section_code, self.section_label)
        section = schema_ops.find_section(schema, section_id)
        fields = _rekey_fragment(self.build(), schema_ops.collect_keys(section))
        logger.debug("Applying preset pack %s to section %s", self.id, self.section_code)
        return PackResult(schema_ops.append_fields_to_section(schema, section_id, fields), section_id)


# ---------------------------------------------------------------------------
# Field builders
# ---------------------------------------------------------------------------

def _options(values: Iterable[Any]) -> List[Option]:
    out = []
    for value in values:
        if isinstance(value, dict):
            out.append(Option(value=normalize_key(value.get("value") or value.get("label")), label=str(value.get("label") or "")))
        else:
            out.append(Option(value=normalize_key(value), label=str(value)))
    return out


def make_field(field_type: str, **patch: Any) -> BaseItem:
    """Default field of ``field_type`` with ``patch`` applied."""
    item = schema_ops.make_default_field(field_type)
    if "key" in patch:
        patch["key"] = normalize_key(patch["key"])
    data = dict(item)
    data.update(patch)
    return type(item).model_validate(data)


def make_choice_field(field_type: str, key: str, label: str, options: Sequence[Any], help_text: str = "", **patch: Any) -> BaseItem:
    return make_field(field_type, key=key, label=label, help_text=help_text, options=_options(options), **patch)


def make_table_field(key: str, label: str, columns: Sequence[Dict[str, Any]], help_text: str = "") -> BaseItem:
    built = []
    for col in columns:
        col_type = str(col.get("type") or "text").lower()
        column = TableColumn(
            rid=generate_id(),
            key=normalize_key(col.get("key") or col.get("label") or "column"),
            label=str(col.get("label") or "Column"),
            type=col_type,
            required=bool(col.get("required")),
        )
        if col_type in CHOICE_COLUMN_TYPES:
            column = column.model_copy(update={"options": _options(col.get("options") or [])})
        built.append(column)
    return make_field(
        "table",
        key=key,
        label=label,
        help_text=help_text,
        table={"min_rows": 0, "max_rows": 0, "allow_add_row": True, "allow_delete_row": True, "columns": built},
    )


def make_group_field(
    key: str,
    label: str,
    items: List[BaseItem],
    help_text: str = "",
    visible_when: Optional[Dict[str, Any]] = None,
    layout: str = "STACK",
) -> BaseItem:
    rules = {"visible_when": visible_when} if visible_when else {}
    return make_field(
        "group",
        key=key,
        label=label,
        help_text=help_text,
        group={"layout": layout, "collapsible": False, "collapsed_by_default": False},
        items=items,
        rules=rules,
    )


def when_true(field_key: str) -> Dict[str, Any]:
    return {"op": "eq", "field_key": field_key, "value": True}


def _rekey_fragment(fields: List[BaseItem], taken: Iterable[str]) -> List[BaseItem]:
    """Give fragment keys that clash with ``taken`` fresh suffixes, rewriting rule references.

    Keys are assigned per node in depth-first order, so two nodes sharing a
    key inside the fragment end up with distinct keys. A rule refers to the
    first node carrying the key it names.
    """
    taken_keys = set(taken)
    new_keys: List[str] = []
    references: Dict[str, str] = {}
    for item, _ in schema_ops.walk_items(fields):
        new_key = unique_key(item.key, taken_keys) if item.key in taken_keys else item.key
        taken_keys.add(new_key)
        new_keys.append(new_key)
        references.setdefault(item.key, new_key)
    if all(new == item.key for new, (item, _) in zip(new_keys, schema_ops.walk_items(fields))):
        return fields
    keys = iter(new_keys)
    return [_rename(item, keys, references) for item in fields]


def _rename(item: BaseItem, keys: Iterator[str], references: Dict[str, str]) -> BaseItem:
    update: Dict[str, Any] = {}
    new_key = next(keys)
    if new_key != item.key:
        update["key"] = new_key
    rule = item.rules.visible_when
    if rule is not None and references.get(rule.field_key, rule.field_key) != rule.field_key:
        new_rule: VisibilityRule = rule.model_copy(update={"field_key": references[rule.field_key]})
        update["rules"] = item.rules.model_copy(update={"visible_when": new_rule})
    if isinstance(item, GroupItem):
        children = [_rename(child, keys, references) for child in item.items]
        if any(new is not old for new, old in zip(children, item.items)):
            update["items"] = children
    return item.model_copy(update=update) if update else item


# ---------------------------------------------------------------------------
# Packs
# ---------------------------------------------------------------------------

def _implant_details() -> List[BaseItem]:
    implant_table = make_table_field(
        key="implant_used",
        label="Implant Used",
        help_text="Record all implants used during the procedure for traceability and audit.",
        columns=[
            {"key": "implant_name", "label": "Implant Name", "type": "text"},
            {"key": "manufacturer", "label": "Manufacturer", "type": "text"},
            {"key": "size_length", "label": "Size / Length", "type": "text"},
            {"key": "side", "label": "Side", "type": "select", "options": ["Left", "Right", "Bilateral"]},
            {"key": "serial_batch_no", "label": "Serial / Batch No", "type": "text"},
            {"key": "quantity", "label": "Quantity", "type": "number"},
        ],
    )
    cement_used = make_field(
        "boolean",
        key="cement_used",
        label="Bone Cement Used",
        help_text="Indicate whether bone cement was used.",
        default_value=False,
    )
    cement_details = make_group_field(
        key="cement_details",
        label="Cement Details",
        help_text="Fill only if cement was used.",
        visible_when=when_true("cement_used"),
        layout="GRID_2",
        items=[
            make_field("text", key="cement_brand", label="Cement Brand"),
            make_field("boolean", key="antibiotic_mixed", label="Antibiotic Mixed", default_value=False),
            make_field(
                "text",
                key="antibiotic_name",
                label="Antibiotic Name",
                rules={"visible_when": when_true("antibiotic_mixed")},
            ),
        ],
    )
    return [implant_table, cement_used, cement_details]


def _count_group(prefix: str, label: str, help_text: str = "") -> BaseItem:
    return make_group_field(
        key=f"{prefix}_count",
        label=label,
        help_text=help_text,
        layout="GRID_2",
        items=[
            make_field("number", key=f"{prefix}_initial_count", label="Initial Count", ui={"width": "HALF"}),
            make_field("number", key=f"{prefix}_final_count", label="Final Count", ui={"width": "HALF"}),
            make_choice_field(
                "radio",
                key=f"{prefix}_count_status",
                label="Count Status",
                options=["Correct", "Incorrect"],
                choice={"display": "RADIO", "orientation": "HORIZONTAL"},
            ),
        ],
    )


def _surgical_counts() -> List[BaseItem]:
    verified_by = make_field(
        "chips",
        key="count_verified_by",
        label="Verified By",
        help_text="Names of OT staff who verified surgical counts (e.g., Scrub Nurse, Circulating Nurse).",
        options=[],
        choice={"allow_custom": True, "display": "CHIPS"},
    )
    return [
        _count_group("sponge", "Sponge / Gauze Count", "Record sponge counts as per OT protocol."),
        _count_group("instrument", "Instrument Count"),
        verified_by,
    ]


def _blood_loss_transfusion() -> List[BaseItem]:
    ebl = make_field(
        "number",
        key="estimated_blood_loss_ml",
        label="Estimated Blood Loss (ml)",
        help_text="Enter estimated intraoperative blood loss in milliliters.",
        clinical={"unit": "ml"},
    )
    transfusion = make_field("boolean", key="blood_transfusion_given", label="Blood Transfusion Given", default_value=False)
    details = make_group_field(
        key="transfusion_details",
        label="Transfusion Details",
        visible_when=when_true("blood_transfusion_given"),
        layout="GRID_2",
        items=[
            make_choice_field("select", key="blood_product", label="Blood Product", options=["PRBC", "FFP", "Platelets", "Whole Blood"]),
            make_field("number", key="units_given", label="Units Given"),
            make_field("boolean", key="transfusion_reaction", label="Transfusion Reaction", default_value=False),
        ],
    )
    return [ebl, transfusion, details]


def _tourniquet_details() -> List[BaseItem]:
    shown = {"visible_when": when_true("tourniquet_used")}
    return [
        make_group_field(
            key="tourniquet_group",
            label="Tourniquet",
            layout="GRID_2",
            items=[
                make_field("boolean", key="tourniquet_used", label="Used", default_value=False),
                make_field("number", key="pressure_mmhg", label="Pressure (mmHg)", clinical={"unit": "mmHg"}, rules=shown),
                make_field("number", key="duration_minutes", label="Duration (minutes)", clinical={"unit": "minutes"}, rules=shown),
            ],
        )
    ]


def _drain_details() -> List[BaseItem]:
    shown = {"visible_when": when_true("drain_used")}
    return [
        make_group_field(
            key="drain_group",
            label="Drain",
            layout="GRID_2",
            items=[
                make_field("boolean", key="drain_used", label="Drain Used", default_value=False),
                make_choice_field("select", key="drain_type", label="Drain Type", options=["Romovac", "Suction", "Corrugated"], rules=shown),
                make_field("number", key="number_of_drains", label="Number of Drains", rules=shown),
            ],
        )
    ]


def _surgeon_signature() -> List[BaseItem]:
    return [
        make_field(
            "signature",
            key="operating_surgeon_signature",
            label="Operating Surgeon Signature",
            help_text="Digital signature of operating surgeon.",
            signature={"signer_role": "DOCTOR", "capture_mode": "DRAW", "watermark": True},
        )
    ]


CLINICAL_PACKS: List[PresetPack] = [
    PresetPack("implant_details", "Implant Details (Audit-safe)", "IMPLANT_DETAILS", "Implant Details", _implant_details),
    PresetPack("surgical_counts", "Surgical Count (OT Safety)", "COUNTS", "Counts", _surgical_counts),
    PresetPack("blood_loss_transfusion", "Blood Loss & Transfusion", "BLOOD_LOSS", "Blood Loss", _blood_loss_transfusion),
    PresetPack("tourniquet_details", "Tourniquet Details", "TOURNIQUET", "Tourniquet Details", _tourniquet_details),
    PresetPack("drain_details", "Drain Details", "DRAIN", "Drain Details", _drain_details),
    PresetPack("surgeon_signature", "Surgeon Signature", "SIGNATURES", "Signatures", _surgeon_signature),
]

_PACKS_BY_ID = {pack.id: pack for pack in CLINICAL_PACKS}


def get_pack(pack_id: str) -> Optional[PresetPack]:
    return _PACKS_BY_ID.get(pack_id)
