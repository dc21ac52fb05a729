"""
FastAPI application entry point for the workspace registry.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from registry.config import Settings, get_settings
from registry.dependencies import build_user_store
from registry.routes import router
from registry.store import UserStore


def create_app(
    settings: Optional[Settings] = None, store: Optional[UserStore] = None
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Workspace Registry", version="0.1.0")
    app.state.settings = settings
    app.state.user_store = store if store is not None else build_user_store(settings)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
