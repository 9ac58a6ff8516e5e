"""Audit trail for coin movements and payment state changes."""

from typing import Any

from streamcoin.models.audit_log import AuditLog


async def log_event(
    user_id: str | None,
    event_type: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    session=None,
) -> None:
    """Append to audit_logs; pass the open session to commit with the surrounding writes."""
    await AuditLog(
        user_id=user_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata=metadata or {},
    ).insert(session=session)
