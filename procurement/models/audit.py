"""
Office Procurement Platform
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for role, assignment,
      workflow and request lifecycle events.
"""

import json
from datetime import datetime, timezone

from procurement.models import db

AUDIT_ACTIONS = {
    # Roles
    "role_created",
    "role_updated",
    "role_deleted",
    "role_cloned",
    # Role assignments & access
    "user_roles_replaced",
    "user_role_removed",
    "user_access_replaced",
    # Workflows
    "workflow_created",
    "workflow_updated",
    "workflow_activated",
    "workflow_duplicated",
    "workflow_deleted",
    # Requests
    "request_submitted",
    "request_level_approved",
    "request_approved",
    "request_rejected",
    "request_fulfilled",
}


class AuditLog(db.Model):
    """
    Immutable audit trail.

    One row per action.  ``diff_json`` carries the relevant before/after
    snapshot for the entity.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_action", "action"),
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    actor_user_id = db.Column(
        db.Integer,
        db.ForeignKey("end_users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    entity_type = db.Column(db.String(30), nullable=False)
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(60), nullable=False)
    diff_json = db.Column(db.Text, default="{}")
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organizationId": self.organization_id,
            "actorUserId": self.actor_user_id,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "action": self.action,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    organization_id: int | None,
    entity_type: str,
    entity_id,
    action: str,
    actor_user_id: int | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    entry = AuditLog(
        organization_id=organization_id,
        actor_user_id=actor_user_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(entry)
    db.session.flush()
    return entry
