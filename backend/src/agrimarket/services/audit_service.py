"""Audit sink: best-effort persistence of action and security records.

Writes run as response background tasks on their own session, so they never
delay or fail the request that triggered them.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import async_sessionmaker

from agrimarket.domain.enums import AuditAction, SecurityEvent
from agrimarket.domain.models import AuditLog

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

# Compared case-insensitively with separators stripped
_SENSITIVE_KEYS = {
    "password",
    "currentpassword",
    "newpassword",
    "passwordhash",
    "refreshtoken",
    "accesstoken",
    "token",
    "tokens",
    "authorization",
}


def _is_sensitive(key: str) -> bool:
    return key.replace("_", "").replace("-", "").lower() in _SENSITIVE_KEYS


def sanitize(value: Any) -> Any:
    """Deep copy with credential-bearing keys redacted."""
    if isinstance(value, dict):
        return {
            k: (REDACTED if isinstance(k, str) and _is_sensitive(k) else sanitize(v))
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [sanitize(v) for v in value]
    return value


@dataclass
class AuditContext:
    """Request facts captured before the response is sent."""

    method: str
    path: str
    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None
    request_body: Any = None
    extra: dict = field(default_factory=dict)


async def write_audit_record(
    session_factory: async_sessionmaker,
    *,
    context: AuditContext,
    action: AuditAction,
    resource: str,
    user_id: str | None = None,
    resource_id: str | None = None,
    status_code: int = 200,
    response_body: Any = None,
) -> None:
    """Persist one audit row. Failures are logged and swallowed."""
    metadata: dict[str, Any] = {
        "method": context.method,
        "url": context.path,
        "statusCode": status_code,
        "requestId": context.request_id,
        **context.extra,
    }
    if context.method in ("POST", "PUT", "PATCH") and context.request_body is not None:
        metadata["requestBody"] = sanitize(context.request_body)
    if status_code < 400 and response_body is not None:
        metadata["responseData"] = sanitize(response_body)

    try:
        async with session_factory() as db:
            db.add(
                AuditLog(
                    user_id=user_id,
                    action=action.value,
                    resource=resource,
                    resource_id=resource_id,
                    meta=metadata,
                    ip_address=context.ip_address,
                    user_agent=(context.user_agent or "")[:255] or None,
                )
            )
            await db.commit()
        logger.info(
            "Audit log created: user=%s action=%s resource=%s id=%s status=%d",
            user_id,
            action.value,
            resource,
            resource_id,
            status_code,
        )
    except Exception as exc:
        logger.error("Failed to create audit log for %s %s: %s", action.value, resource, exc)


async def write_security_event(
    session_factory: async_sessionmaker,
    *,
    context: AuditContext,
    event: SecurityEvent,
    status_code: int,
    user_id: str | None = None,
    email: str | None = None,
) -> None:
    """Persist a SECURITY_EVENT row (login outcome, registration, password change)."""
    metadata = {
        "eventType": event.value,
        "method": context.method,
        "url": context.path,
        "statusCode": status_code,
        "email": email,
        "success": status_code < 400,
        "requestId": context.request_id,
    }
    logger.warning("Security event: %s user=%s email=%s status=%d", event.value, user_id, email, status_code)
    try:
        async with session_factory() as db:
            db.add(
                AuditLog(
                    user_id=user_id,
                    action=AuditAction.SECURITY_EVENT.value,
                    resource="security",
                    meta=metadata,
                    ip_address=context.ip_address,
                    user_agent=(context.user_agent or "")[:255] or None,
                )
            )
            await db.commit()
    except Exception as exc:
        logger.error("Failed to create security log for %s: %s", event.value, exc)
