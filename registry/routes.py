"""
HTTP routes for the workspace registry API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from registry.config import Settings
from registry.dependencies import (
    PASSWORD_COOKIE,
    USER_COOKIE,
    get_app_settings,
    get_current_user,
    get_user_store,
    require_app_password,
)
from registry.schemas import (
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    UserRequest,
    UserResponse,
)
from registry.store import (
    DuplicateKeyError,
    StoreUnavailableError,
    UserNotFoundError,
    UserRecord,
    UserStore,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _set_cookie(response: Response, settings: Settings, name: str, value: str) -> None:
    response.set_cookie(
        name,
        value,
        max_age=settings.cookie_max_age_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    response: Response,
    settings: Settings = Depends(get_app_settings),
):
    if not settings.app_password or payload.password != settings.app_password:
        raise HTTPException(status_code=401, detail="Invalid password")
    _set_cookie(response, settings, PASSWORD_COOKIE, payload.password)
    return LoginResponse(success=True)


@router.post("/logout", response_model=LogoutResponse)
def logout(response: Response, settings: Settings = Depends(get_app_settings)):
    response.delete_cookie(
        USER_COOKIE, httponly=True, secure=settings.cookie_secure, samesite="strict"
    )
    return LogoutResponse(message="Logged out successfully")


@router.post(
    "/users",
    response_model=UserResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_app_password)],
)
def create_or_update_user(
    payload: UserRequest,
    response: Response,
    store: UserStore = Depends(get_user_store),
    settings: Settings = Depends(get_app_settings),
):
    """
    Register an email with a workspace, or move an existing email to a new one.
    """
    email = payload.email or ""
    workspace_name = payload.workspaceName or ""
    if not email.strip():
        raise HTTPException(status_code=400, detail="Email is required")
    if not workspace_name.strip():
        raise HTTPException(status_code=400, detail="Workspace name is required")

    try:
        user = store.find_user(email)
        if user is None:
            user = store.add_user(email, workspace_name)
            response.status_code = 201
        else:
            user = store.update_user(email, workspace_name)
            response.status_code = 200
    except DuplicateKeyError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except UserNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except StoreUnavailableError:
        logger.exception("Error creating user %s", email)
        raise HTTPException(status_code=500, detail="Failed to create user")

    _set_cookie(response, settings, USER_COOKIE, email)
    return UserResponse.from_record(user)


@router.get(
    "/users/me",
    response_model=UserResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_app_password)],
)
def current_user(user: UserRecord = Depends(get_current_user)):
    return UserResponse.from_record(user)
