"""Glue between request handlers and the audit sink.

Handlers describe what happened; the writes are queued on the response's
``BackgroundTasks`` and run after the body has been sent.
"""

from typing import Any

from fastapi import BackgroundTasks, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from agrimarket.app.middleware import client_ip
from agrimarket.domain.enums import AuditAction, SecurityEvent
from agrimarket.services.audit_service import (
    AuditContext,
    write_audit_record,
    write_security_event,
)


def audit_context(request: Request, body: Any = None) -> AuditContext:
    return AuditContext(
        method=request.method,
        path=request.url.path,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None),
        request_body=body,
    )


def queue_audit(
    background: BackgroundTasks,
    session_factory: async_sessionmaker,
    request: Request,
    action: AuditAction,
    resource: str,
    *,
    user_id: str | None = None,
    resource_id: str | None = None,
    status_code: int = 200,
    body: Any = None,
    response_body: Any = None,
) -> None:
    background.add_task(
        write_audit_record,
        session_factory,
        context=audit_context(request, body),
        action=action,
        resource=resource,
        user_id=user_id,
        resource_id=resource_id,
        status_code=status_code,
        response_body=response_body,
    )


def queue_security_event(
    background: BackgroundTasks,
    session_factory: async_sessionmaker,
    request: Request,
    event: SecurityEvent,
    *,
    status_code: int,
    user_id: str | None = None,
    email: str | None = None,
) -> None:
    background.add_task(
        write_security_event,
        session_factory,
        context=audit_context(request),
        event=event,
        status_code=status_code,
        user_id=user_id,
        email=email,
    )
