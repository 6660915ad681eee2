"""Shared fixtures for the template builder tests."""

import pytest

from emr_templates.config import get_settings
from emr_templates.schemas.template import TemplateCreateRequest, TemplateMetadata
from emr_templates.services.lifecycle import TemplateLifecycleService
from emr_templates.services.schema_reader import load_schema
from emr_templates.utils.normalization import ensure_editor_ids


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached; drop the cache so env overrides in a test stay local."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def raw_schema():
    """A small schema as stored by the persistence layer."""
    return {
        "schema_version": 1,
        "sections": [
            {
                "code": "VITALS",
                "label": "Vitals",
                "layout": "GRID_2",
                "items": [
                    {"type": "number", "key": "pulse", "label": "Pulse"},
                    {"type": "boolean", "key": "febrile", "label": "Febrile"},
                    {
                        "type": "number",
                        "key": "temperature",
                        "label": "Temperature",
                        "rules": {"visible_when": {"field_key": "febrile", "op": "eq", "value": True}},
                    },
                ],
            },
            {
                "code": "PLAN",
                "label": "Plan",
                "items": [
                    {
                        "type": "group",
                        "key": "follow_up",
                        "label": "Follow up",
                        "items": [
                            {"type": "date", "key": "follow_up_date", "label": "Date"},
                            {
                                "type": "table",
                                "key": "meds",
                                "label": "Medications",
                                "table": {
                                    "columns": [
                                        {"key": "drug", "label": "Drug", "type": "text"},
                                        {"key": "route", "label": "Route", "type": "select", "options": []},
                                    ]
                                },
                            },
                        ],
                    },
                    {
                        "type": "select",
                        "key": "disposition",
                        "label": "Disposition",
                        "options": [{"value": "home", "label": "Home"}, {"value": "ward", "label": "Ward"}],
                    },
                ],
            },
        ],
    }


@pytest.fixture
def schema(raw_schema):
    """The raw fixture schema loaded with editor ids on every node."""
    return ensure_editor_ids(load_schema(raw_schema))


@pytest.fixture
def metadata():
    return TemplateMetadata(
        name="OPD Consultation",
        dept_code="GEN_MED",
        record_type_code="OPD_NOTE",
        tags=["opd"],
    )


@pytest.fixture
def draft_template(metadata, raw_schema):
    """Version 1 DRAFT template."""
    request = TemplateCreateRequest(
        **metadata.model_dump(),
        schema_json=raw_schema,
        sections=["VITALS", "PLAN"],
    )
    return TemplateLifecycleService.create_template(request, author="dr.rao", template_id="tpl-1")
