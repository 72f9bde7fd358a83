"""FastAPI application for the intake and moderation API.

Provides REST API endpoints wrapping the intake package for:
- Form submission intake, moderation and contact sharing
- Comment intake, threads, moderation and reports
- Audit event listing and export
- Identity blocklist management
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

# Ensure the intake package is importable by adding the project root to sys.path.
_project_root = str(Path(__file__).resolve().parents[3])
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from intake import __version__
from intake.config import IntakeSettings, load_settings
from intake.service import IntakeService
from web.backend.app.routers import blocklist, comments, events, forms

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[IntakeSettings] = None,
    service: Optional[IntakeService] = None,
) -> FastAPI:
    """Build an app around one IntakeService.

    Without arguments, settings come from the YAML file named by
    ``INTAKE_SETTINGS`` (if any) plus ``INTAKE_*`` environment overrides.
    """
    if service is None:
        settings = settings or load_settings(os.getenv("INTAKE_SETTINGS") or None)
        service = IntakeService.from_settings(settings)

    app = FastAPI(
        title="Intake API",
        description=(
            "REST API for form submissions and comments: validation, spam "
            "classification, moderation, contact sharing and audit events."
        ),
        version=__version__,
    )
    app.state.service = service

    # -----------------------------------------------------------------------
    # CORS middleware (allow all origins for development)
    # -----------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Include routers
    # -----------------------------------------------------------------------
    app.include_router(forms.router)
    app.include_router(comments.router)
    app.include_router(events.router)
    app.include_router(blocklist.router)

    @app.get("/", tags=["meta"])
    async def root():
        """Return basic API information."""
        return {
            "name": "Intake API",
            "version": __version__,
            "docs": "/docs",
            "openapi": "/openapi.json",
        }

    @app.get("/health", tags=["meta"])
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


logging.basicConfig(
    level=os.getenv("INTAKE_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
