"""Authentication routes: register, login, refresh, logout, profile, password."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agrimarket.app.audit_hooks import queue_audit, queue_security_event
from agrimarket.app.middleware import client_ip
from agrimarket.app.responses import error_response, success_response
from agrimarket.domain.enums import AuditAction, SecurityEvent, UserRole
from agrimarket.domain.errors import ApiError, Forbidden, Unauthenticated
from agrimarket.domain.models import User
from agrimarket.domain.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    LogoutRequest,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
)
from agrimarket.infra.database import get_db, get_session_factory
from agrimarket.services import auth_service
from agrimarket.services.auth_service import AuthResult
from agrimarket.services.serializers import serialize_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


async def get_current_user_dep(
    request: Request, db: AsyncSession = Depends(get_db)
) -> User:
    """Dependency: resolve the principal from the Bearer token."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Access token required")
    user = await auth_service.resolve_principal(db, token.strip())
    request.state.user_id = user.id
    return user


def require_role(*roles: UserRole):
    """Factory: dependency that checks user has one of the required roles."""
    allowed = {role.value for role in roles}

    async def checker(user: User = Depends(get_current_user_dep)) -> User:
        if user.role not in allowed:
            raise Forbidden(f"{' or '.join(sorted(allowed)).title()} access required")
        return user

    return checker


def ensure_self(claimed_id: str | None, user: User, field: str) -> None:
    """Clients may still send their own id in the body/query; it must match the token."""
    if claimed_id is not None and claimed_id != user.id:
        logger.warning("Principal mismatch: %s=%s token user=%s", field, claimed_id, user.id)
        raise Forbidden(f"{field} does not match the authenticated user")


def _auth_payload(result: AuthResult) -> dict:
    return {
        "user": serialize_user(result.user),
        "tokens": result.tokens.model_dump(by_alias=True),
    }


@router.post("/register", status_code=201)
async def register(
    data: RegisterRequest,
    request: Request,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    result = await auth_service.register_user(
        db, data, client_ip(request), request.headers.get("user-agent")
    )
    request.state.user_id = result.user.id
    payload = _auth_payload(result)

    queue_audit(
        background, session_factory, request, AuditAction.REGISTER, "user",
        user_id=result.user.id, resource_id=result.user.id, status_code=201,
        body=data.model_dump(by_alias=True, mode="json"), response_body=payload,
    )
    queue_security_event(
        background, session_factory, request, SecurityEvent.REGISTRATION,
        status_code=201, user_id=result.user.id, email=result.user.email,
    )
    logger.info("User registered successfully: %s (%s)", result.user.email, result.user.role)
    return success_response(payload, status_code=201, background=background)


@router.post("/login")
async def login(
    data: LoginRequest,
    request: Request,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    try:
        result = await auth_service.authenticate(
            db, data.email, data.password, client_ip(request), request.headers.get("user-agent")
        )
    except Unauthenticated as exc:
        # Failed logins are still recorded; the error body is identical for every cause
        queue_security_event(
            background, session_factory, request, SecurityEvent.LOGIN_FAILED,
            status_code=exc.status_code, email=data.email,
        )
        logger.warning("Login failed for %s: %s", data.email, exc.message)
        return error_response(exc.code, exc.message, exc.status_code, background=background)

    request.state.user_id = result.user.id
    payload = _auth_payload(result)
    queue_audit(
        background, session_factory, request, AuditAction.LOGIN, "auth",
        user_id=result.user.id, resource_id=result.user.id,
        body=data.model_dump(by_alias=True, mode="json"), response_body=payload,
    )
    queue_security_event(
        background, session_factory, request, SecurityEvent.LOGIN_SUCCESS,
        status_code=200, user_id=result.user.id, email=result.user.email,
    )
    logger.info("User logged in successfully: %s", result.user.id)
    return success_response(payload, background=background)


@router.post("/refresh")
async def refresh(
    data: RefreshRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    result = await auth_service.refresh_tokens(
        db, data.refresh_token, client_ip(request), request.headers.get("user-agent")
    )
    request.state.user_id = result.user.id
    return success_response(_auth_payload(result))


@router.post("/logout")
async def logout(
    request: Request,
    background: BackgroundTasks,
    data: LogoutRequest | None = None,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    refresh_token = data.refresh_token if data else None
    revoked = await auth_service.revoke_sessions(db, user.id, refresh_token)
    queue_audit(
        background, session_factory, request, AuditAction.LOGOUT, "auth",
        user_id=user.id, resource_id=user.id,
    )
    logger.info("User logged out: %s (%d sessions revoked)", user.id, revoked)
    return success_response({"message": "Logged out successfully", "revokedSessions": revoked}, background=background)


@router.get("/profile")
async def get_profile(
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    profile = await auth_service.get_profile(db, user.id)
    return success_response({"user": serialize_user(profile)})


@router.put("/profile")
async def update_profile(
    data: ProfileUpdate,
    request: Request,
    background: BackgroundTasks,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    updated = await auth_service.update_profile(db, user, data)
    payload = {"user": serialize_user(updated)}
    queue_audit(
        background, session_factory, request, AuditAction.UPDATE_PROFILE, "user",
        user_id=user.id, resource_id=user.id,
        body=data.model_dump(by_alias=True, mode="json", exclude_unset=True), response_body=payload,
    )
    return success_response(payload, background=background)


@router.put("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    request: Request,
    background: BackgroundTasks,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    try:
        await auth_service.change_password(db, user, data.current_password, data.new_password)
    except ApiError as exc:
        queue_security_event(
            background, session_factory, request, SecurityEvent.PASSWORD_CHANGE,
            status_code=exc.status_code, user_id=user.id, email=user.email,
        )
        return error_response(exc.code, exc.message, exc.status_code, exc.details, background=background)

    queue_audit(
        background, session_factory, request, AuditAction.CHANGE_PASSWORD, "user",
        user_id=user.id, resource_id=user.id, body=data.model_dump(by_alias=True),
    )
    queue_security_event(
        background, session_factory, request, SecurityEvent.PASSWORD_CHANGE,
        status_code=200, user_id=user.id, email=user.email,
    )
    return success_response({"message": "Password changed successfully"}, background=background)
