"""Audit log for order lifecycle and admin actions."""

from typing import Any

from storefront.models.audit_log import AuditLog


async def log_event(
    event_type: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    actor: str | None = None,
) -> None:
    """Append to audit_logs collection."""
    await AuditLog(
        actor=actor,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata=metadata or {},
    ).insert()
