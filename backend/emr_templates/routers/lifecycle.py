"""Template version lifecycle router.

Stateless: the caller sends the current ``Template`` and receives the
transitioned one; storing it is the caller's business.
"""

from typing import Literal

from fastapi import APIRouter, HTTPException, status

from emr_templates.errors import LifecyclePolicyError, TemplateValidationError
from emr_templates.schemas.api import LifecycleRequest, TemplateCreateBody
from emr_templates.schemas.template import Template
from emr_templates.services.lifecycle import TemplateLifecycleService
from emr_templates.services.save import build_template_create_request
from emr_templates.services.schema_reader import load_schema
from emr_templates.services.validation import validate_schema, validate_template

router = APIRouter()

LifecycleAction = Literal["publish", "save", "restore", "archive"]


def _policy_error(exc: LifecyclePolicyError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=str(exc)
    )


def _validation_error(exc: TemplateValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=exc.errors
    )


@router.post("/create", response_model=Template)
async def create_template(body: TemplateCreateBody):
    """Validate metadata and schema, then build a version 1 template."""
    schema = load_schema(body.schema_json)
    try:
        validate_template(body.metadata, schema)
    except TemplateValidationError as exc:
        raise _validation_error(exc)
    request = build_template_create_request(body.metadata, schema, body.publish, body.note)
    return TemplateLifecycleService.create_template(request, author=body.author)


@router.post("/{action}", response_model=Template)
async def apply_transition(action: LifecycleAction, body: LifecycleRequest):
    """Apply a lifecycle transition to the given template."""
    template = body.template
    try:
        if action == "publish":
            if body.publish is None:
                return TemplateLifecycleService.toggle_publish(template, body.author, body.note)
            return TemplateLifecycleService.set_published(template, body.publish, body.author, body.note)
        if action == "save":
            if body.save is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="save requires a version request"
                )
            if body.save.restore_from_version is None:
                validate_schema(load_schema(body.save.schema_json))
            return TemplateLifecycleService.save_version(template, body.save, body.author)
        if action == "restore":
            if body.version is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="restore requires a version"
                )
            return TemplateLifecycleService.restore_version(template, body.version, body.author)
        return TemplateLifecycleService.archive(template, body.author)
    except LifecyclePolicyError as exc:
        raise _policy_error(exc)
    except TemplateValidationError as exc:
        raise _validation_error(exc)
