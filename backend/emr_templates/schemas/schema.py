"""Pydantic models for the template schema tree (sections, items, rules)."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Type, Union, get_args

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Annotated

# Editor-only identity key, serialized on every node and stripped before save
EDITOR_ID_FIELD = "_rid"
EDITOR_PRIVATE_PREFIX = "__"


class SchemaNode(BaseModel):
    """Base for every schema node; unknown keys from legacy data are kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class SectionLayout(str, Enum):
    """Column layout of a section or group."""
    STACK = "STACK"
    GRID_2 = "GRID_2"
    GRID_3 = "GRID_3"


class Option(SchemaNode):
    """A single choice option."""
    value: str
    label: str = ""


class VisibilityRule(SchemaNode):
    """Single-condition rule gating whether an item is shown."""
    field_key: Optional[str] = Field(None, description="Key of the item whose value is tested")
    op: Literal["eq", "neq"] = "eq"
    value: Any = True


class ItemRules(SchemaNode):
    """Item rules; per-type hints (max_length, min, ...) are stored as extra keys."""
    visible_when: Optional[VisibilityRule] = None


class ItemUI(SchemaNode):
    """Rendering hints."""
    width: str = "FULL"
    hint: str = ""
    label_placement: str = "TOP"


class ClinicalMeta(SchemaNode):
    """Clinical coding attached to a field."""
    concept_code: str = ""
    unit: str = ""
    normal_low: str = ""
    normal_high: str = ""
    terminology: str = ""


class BaseItem(SchemaNode):
    """Attributes shared by every item variant."""
    rid: Optional[str] = Field(None, alias=EDITOR_ID_FIELD)
    kind: str = "field"
    key: str = ""
    label: str = ""
    required: bool = False
    readonly: bool = False
    placeholder: str = ""
    help_text: str = ""
    default_value: Any = None
    ui: ItemUI = Field(default_factory=ItemUI)
    rules: ItemRules = Field(default_factory=ItemRules)
    clinical: ClinicalMeta = Field(default_factory=ClinicalMeta)
    # Legacy flat representation only; cleared when read into nested form
    parent_key: Optional[str] = None


class TextItem(BaseItem):
    type: Literal["text", "textarea"] = "text"


class NumberItem(BaseItem):
    type: Literal["number"] = "number"


class DateTimeItem(BaseItem):
    type: Literal["date", "time", "datetime"] = "date"


class BooleanItem(BaseItem):
    type: Literal["boolean"] = "boolean"
    default_value: Any = False


class ChoiceConfig(SchemaNode):
    allow_custom: bool = False
    display: str = "LIST"
    orientation: Optional[str] = None


class ChoiceItem(BaseItem):
    type: Literal["select", "multiselect", "radio", "chips"] = "select"
    options: List[Option] = Field(default_factory=list)
    choice: ChoiceConfig = Field(default_factory=ChoiceConfig)


ColumnType = Literal[
    "text", "textarea", "number", "date", "time", "datetime", "boolean", "select", "radio",
]
COLUMN_TYPES: Tuple[str, ...] = get_args(ColumnType)
CHOICE_COLUMN_TYPES = ("select", "radio")


class TableColumn(SchemaNode):
    """A column of a table item."""
    rid: Optional[str] = Field(None, alias=EDITOR_ID_FIELD)
    key: str = ""
    label: str = ""
    type: ColumnType = "text"
    required: bool = False
    options: Optional[List[Option]] = None


class TableConfig(SchemaNode):
    min_rows: int = 0
    max_rows: int = 0
    allow_add_row: bool = True
    allow_delete_row: bool = True
    columns: List[TableColumn] = Field(default_factory=list)


class TableItem(BaseItem):
    type: Literal["table"] = "table"
    table: TableConfig = Field(default_factory=TableConfig)


class GroupConfig(SchemaNode):
    layout: SectionLayout = SectionLayout.STACK
    collapsible: bool = False
    collapsed_by_default: bool = False


class GroupItem(BaseItem):
    type: Literal["group"] = "group"
    group: GroupConfig = Field(default_factory=GroupConfig)
    items: List["Item"] = Field(default_factory=list)


class SignatureConfig(SchemaNode):
    signer_role: str = "DOCTOR"
    capture_mode: str = "DRAW"
    watermark: bool = True


class SignatureItem(BaseItem):
    type: Literal["signature"] = "signature"
    signature: SignatureConfig = Field(default_factory=SignatureConfig)


class FileConfig(SchemaNode):
    accept: str = "*/*"
    max_files: int = 1
    max_size_mb: int = 10


class FileItem(BaseItem):
    type: Literal["file"] = "file"
    file: FileConfig = Field(default_factory=FileConfig)


class ImageConfig(SchemaNode):
    accept: str = "image/*"
    max_files: int = 1
    max_size_mb: int = 10
    allow_crop: bool = False


class ImageItem(BaseItem):
    type: Literal["image"] = "image"
    image: ImageConfig = Field(default_factory=ImageConfig)


class CalculationConfig(SchemaNode):
    expression: str = ""
    output_type: str = "number"
    precision: int = 2


class CalculationItem(BaseItem):
    """Derived, read-only value."""
    type: Literal["calculation"] = "calculation"
    readonly: bool = True
    calculation: CalculationConfig = Field(default_factory=CalculationConfig)


class ChartConfig(SchemaNode):
    chart_type: str = "LINE"  # LINE | BAR | AREA
    source: str = "FIELDS"  # FIELDS | QUERY
    x_key: str = ""
    y_keys: List[str] = Field(default_factory=list)
    title: str = "Vitals Trend"
    show_legend: bool = True


class ChartItem(BaseItem):
    """Derived, read-only trend graph."""
    type: Literal["chart", "graph"] = "chart"
    readonly: bool = True
    chart: ChartConfig = Field(default_factory=ChartConfig)


ITEM_VARIANTS: Tuple[Type[BaseItem], ...] = (
    TextItem,
    NumberItem,
    DateTimeItem,
    BooleanItem,
    ChoiceItem,
    TableItem,
    GroupItem,
    SignatureItem,
    FileItem,
    ImageItem,
    CalculationItem,
    ChartItem,
)

Item = Annotated[
    Union[
        TextItem,
        NumberItem,
        DateTimeItem,
        BooleanItem,
        ChoiceItem,
        TableItem,
        GroupItem,
        SignatureItem,
        FileItem,
        ImageItem,
        CalculationItem,
        ChartItem,
    ],
    Field(discriminator="type"),
]


def _variant_types(variant: Type[BaseItem]) -> Tuple[str, ...]:
    return get_args(variant.model_fields["type"].annotation)


# type tag -> variant class; every tag of the union must resolve to exactly one class
ITEM_CLASSES: Dict[str, Type[BaseItem]] = {
    type_name: variant
    for variant in ITEM_VARIANTS
    for type_name in _variant_types(variant)
}
assert len(ITEM_CLASSES) == sum(len(_variant_types(v)) for v in ITEM_VARIANTS)
assert set(ITEM_VARIANTS) == set(get_args(get_args(Item)[0]))

FIELD_TYPES: Tuple[str, ...] = (
    "text",
    "textarea",
    "number",
    "date",
    "time",
    "datetime",
    "boolean",
    "select",
    "multiselect",
    "radio",
    "chips",
    "table",
    "group",
    "signature",
    "file",
    "image",
    "calculation",
    "chart",
)
CHOICE_TYPES = ("select", "multiselect", "radio", "chips")
CONDITION_SOURCE_TYPES = ("boolean", "radio", "select")


class Section(SchemaNode):
    """A named, addressable group of items."""
    rid: Optional[str] = Field(None, alias=EDITOR_ID_FIELD)
    code: str = ""
    label: str = ""
    phase: str = "OTHER"
    layout: SectionLayout = SectionLayout.STACK
    repeatable: bool = False
    items: List[Item] = Field(default_factory=list)


class Schema(SchemaNode):
    """Document structure of a template version."""
    schema_version: int = 1
    sections: List[Section] = Field(default_factory=list)


GroupItem.model_rebuild()
Section.model_rebuild()
Schema.model_rebuild()
