"""FastAPI application factory"""

import logging
from pathlib import Path
from typing import Optional, Union

from fastapi import FastAPI

from resourcedeps import __version__
from resourcedeps.config import Settings, load_settings
from resourcedeps.webui.api import dependencies
from resourcedeps.webui.api.error_envelope import register_error_handlers

logger = logging.getLogger(__name__)


def create_app(
    db_path: Optional[Union[str, Path]] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API application

    Args:
        db_path: Database file (default: settings.db_path)
        settings: Settings to use (default: load_settings())
    """
    settings = settings or load_settings()

    app = FastAPI(
        title="resourcedeps",
        description="Dependency graphs and install plans for marketplace resources",
        version=__version__,
    )
    app.state.settings = settings
    app.state.db_path = str(db_path) if db_path else settings.db_path

    register_error_handlers(app)
    app.include_router(dependencies.router, prefix="/api", tags=["dependencies"])

    @app.get("/api/health")
    async def health():
        return {"ok": True, "version": __version__}

    logger.info(f"API ready (db={app.state.db_path})")
    return app
