"""Schema normalization and visibility preview router."""

from typing import Any, Dict

from fastapi import APIRouter, Body

from emr_templates.schemas.api import NormalizeResponse, VisibilityRequest
from emr_templates.services.save import build_persisted_schema
from emr_templates.services.schema_reader import load_schema
from emr_templates.services.visibility import evaluate_visibility
from emr_templates.utils.normalization import derive_section_codes

router = APIRouter()


@router.post("/normalize", response_model=NormalizeResponse)
async def normalize_schema(raw: Any = Body(None)):
    """Read a raw (possibly legacy or flat) schema and return its persisted form."""
    persisted = build_persisted_schema(load_schema(raw))
    return NormalizeResponse(schema_json=persisted, sections=derive_section_codes(persisted))


@router.post("/visibility", response_model=Dict[str, Dict[str, bool]])
async def preview_visibility(request: VisibilityRequest):
    """Visibility of every keyed item, per section code, for the given values."""
    return evaluate_visibility(load_schema(request.schema_json), request.values)
