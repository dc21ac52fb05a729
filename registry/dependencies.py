"""
Store selection and dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request

from registry.config import Settings
from registry.store import (
    FileUserStore,
    RedisUserStore,
    StoreUnavailableError,
    UserRecord,
    UserStore,
)

logger = logging.getLogger(__name__)

PASSWORD_COOKIE = "appPassword"
USER_COOKIE = "userEmail"


def build_user_store(settings: Settings) -> UserStore:
    """
    Pick the user store once at startup: Redis if a connection string is
    configured, the local JSON file otherwise. Data is never copied between them.
    """
    redis_url = (settings.redis_url or "").strip()
    if redis_url:
        logger.info("Using Redis user store")
        return RedisUserStore(
            url=redis_url,
            key_prefix=settings.redis_key_prefix,
            timeout=settings.store_timeout_seconds,
        )
    logger.info("Using file user store at %s", settings.users_file_path)
    return FileUserStore(
        settings.users_file_path, timeout=settings.store_timeout_seconds
    )


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_user_store(request: Request) -> UserStore:
    return request.app.state.user_store


def require_app_password(
    request: Request, settings: Settings = Depends(get_app_settings)
) -> None:
    if not settings.app_password:
        return
    if request.cookies.get(PASSWORD_COOKIE) != settings.app_password:
        raise HTTPException(status_code=401, detail="Password required")


def get_current_user(
    request: Request, store: UserStore = Depends(get_user_store)
) -> UserRecord:
    """Resolve the user named by the email cookie, or reject the request."""
    email = request.cookies.get(USER_COOKIE)
    if not email:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        user = store.find_user(email)
    except StoreUnavailableError:
        logger.exception("Failed to look up current user %s", email)
        raise HTTPException(status_code=500, detail="Failed to load user")
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
