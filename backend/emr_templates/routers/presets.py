"""Clinical preset pack router."""

from typing import Any, List

from fastapi import APIRouter, Body, HTTPException, status

from emr_templates.schemas.api import PackApplyResponse, PresetSummary
from emr_templates.services.presets import CLINICAL_PACKS, get_pack
from emr_templates.services.save import build_persisted_schema
from emr_templates.services.schema_reader import load_schema
from emr_templates.utils.normalization import ensure_editor_ids

router = APIRouter()


@router.get("", response_model=List[PresetSummary])
async def list_presets():
    """List available clinical preset packs."""
    return [
        PresetSummary(id=pack.id, label=pack.label, section_code=pack.section_code)
        for pack in CLINICAL_PACKS
    ]


@router.post("/{pack_id}/apply", response_model=PackApplyResponse)
async def apply_preset(pack_id: str, raw: Any = Body(None)):
    """Apply a preset pack to a raw schema."""
    pack = get_pack(pack_id)
    if pack is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Preset pack not found"
        )
    schema = ensure_editor_ids(load_schema(raw))
    result = pack.apply(schema)
    focus = next((sec for sec in result.schema.sections if sec.rid == result.focus_section_id), None)
    return PackApplyResponse(
        schema_json=build_persisted_schema(result.schema),
        focus_section_code=focus.code if focus else None,
    )
