"""FastAPI application entry point."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from emr_templates.config import get_settings
from emr_templates.logging_setup import setup_logging
from emr_templates.routers import lifecycle, presets, schema

settings = get_settings()
setup_logging(settings.log_level)

app = FastAPI(
    title="EMR Template Builder",
    description="Clinical template schemas with conditional visibility, preset packs and version lifecycle",
    version="1.0.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(schema.router, prefix="/api/schema", tags=["Schema"])
app.include_router(presets.router, prefix="/api/presets", tags=["Preset Packs"])
app.include_router(lifecycle.router, prefix="/api/lifecycle", tags=["Lifecycle"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "emr-templates-backend"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "EMR Template Builder API",
        "docs": "/docs",
        "health": "/health",
    }
