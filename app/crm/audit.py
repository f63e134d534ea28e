"""
Append-only audit trail.

Every customer/job mutation and every login attempt writes one ``AuditEvent``
in the same transaction as the change it describes, so a rolled-back intake
leaves no event behind.
"""

import json
from collections.abc import Mapping
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.crm.models import AuditEvent, User


def changed_fields(before: Mapping[str, Any], after: Mapping[str, Any]) -> dict[str, Any]:
    """Field-level diff for update events: ``{"before": {...}, "after": {...}, "fields_changed": [...]}``."""
    changed = sorted(k for k in after if before.get(k) != after.get(k))
    return {
        "before": {k: before.get(k) for k in changed},
        "after": {k: after.get(k) for k in changed},
        "fields_changed": changed,
    }


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditEvent:
    in_request = has_request_context()
    ev = AuditEvent(
        request_id=getattr(g, "request_id", None) if in_request else None,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        client_ip=request.remote_addr if in_request else None,
    )
    s.add(ev)
    return ev


def events_for(s: Session, entity_type: str, entity_id: str | int) -> list[AuditEvent]:
    """Oldest first."""
    return list(
        s.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == str(entity_id))
            .order_by(AuditEvent.created_at.asc(), AuditEvent.id.asc())
        ).scalars()
    )
