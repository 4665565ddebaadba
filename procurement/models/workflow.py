"""
Approval workflow templates.

Models:
    - ApprovalWorkflow: named, versioned template keyed by trigger_type
    - ApprovalLevel: one ordered step of a template, bound to a role

At most one workflow per (organization, trigger_type) is active. The
system-seeded default workflow is read-only.
"""

from datetime import datetime, timezone

from procurement.models import db
from procurement.models.base import OrgModel

TRIGGER_REQUEST_SUBMITTED = "request_submitted"
TRIGGER_TYPES = (TRIGGER_REQUEST_SUBMITTED, "manual")


class ApprovalWorkflow(OrgModel):
    __tablename__ = "approval_workflows"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    trigger_type = db.Column(db.String(50), nullable=False, default=TRIGGER_REQUEST_SUBMITTED)
    is_default = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=False, nullable=False)
    version = db.Column(db.Integer, default=1, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("end_users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_approval_workflows_org_trigger", "organization_id", "trigger_type"),
    )

    levels = db.relationship(
        "ApprovalLevel",
        back_populates="workflow",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ApprovalLevel.level_order",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "triggerType": self.trigger_type,
            "isDefault": self.is_default,
            "isActive": self.is_active,
            "version": self.version,
            "levels": [lvl.to_dict() for lvl in self.levels],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class ApprovalLevel(db.Model):
    __tablename__ = "approval_levels"

    id = db.Column(db.Integer, primary_key=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("approval_workflows.id", ondelete="CASCADE"), nullable=False, index=True
    )
    level_order = db.Column(db.Integer, nullable=False)  # 1-based, contiguous
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="RESTRICT"), nullable=False
    )

    __table_args__ = (
        db.UniqueConstraint("workflow_id", "level_order", name="uq_approval_level_order"),
    )

    workflow = db.relationship("ApprovalWorkflow", back_populates="levels")
    role = db.relationship("Role", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "levelOrder": self.level_order,
            "roleId": self.role_id,
            "roleName": self.role.name if self.role else None,
        }
