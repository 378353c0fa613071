"""Audit helpers."""

from saleflow.extensions import db
from saleflow.models.audit import AuditEvent


def log_audit(action, metadata=None, actor_user_id=None):
    """Stage an audit event. The caller controls the commit boundary.

    Actor is None for webhook-driven events (system-initiated).
    """
    event = AuditEvent(
        actor_user_id=actor_user_id,
        action=action,
        metadata_=metadata or {},
    )
    db.session.add(event)
    db.session.flush()
    return event
