"""
Purchase requests and their runtime approval chain.

Models:
    - Request: a submitted purchase request (pending → approved → fulfilled,
      or pending → rejected)
    - RequestItem: one catalogue line of a request
    - RequestApproval: one approval-level instance, snapshotted from the
      workflow template at submission time
"""

from datetime import datetime, timezone
from decimal import Decimal

from procurement.models import db
from procurement.models.base import OrgModel

# Request status
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_FULFILLED = "fulfilled"
REQUEST_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED, STATUS_FULFILLED)
TERMINAL_STATUSES = frozenset({STATUS_REJECTED, STATUS_FULFILLED})

PRIORITIES = ("low", "normal", "high", "urgent")
DEFAULT_PRIORITY = "normal"

# Level instance status
LEVEL_AWAITING = "AWAITING"
LEVEL_PENDING = "PENDING"
LEVEL_APPROVED = "APPROVED"
LEVEL_REJECTED = "REJECTED"

UNCATEGORIZED = "Uncategorized"


def _iso(value):
    return value.isoformat() if value else None


class Request(OrgModel):
    __tablename__ = "requests"

    id = db.Column(db.Integer, primary_key=True)
    requester_id = db.Column(
        db.Integer, db.ForeignKey("end_users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    site_id = db.Column(db.Integer, db.ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False)
    area_id = db.Column(db.Integer, db.ForeignKey("areas.id", ondelete="RESTRICT"), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
    priority = db.Column(db.String(20), nullable=False, default=DEFAULT_PRIORITY)
    notes = db.Column(db.Text)
    requested_by_date = db.Column(db.DateTime)

    # Workflow snapshot: the template may be edited or deleted later
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("approval_workflows.id", ondelete="SET NULL"), nullable=True
    )
    workflow_name = db.Column(db.String(200))
    workflow_version = db.Column(db.Integer)

    approved_at = db.Column(db.DateTime)
    approved_by = db.Column(db.Integer, db.ForeignKey("end_users.id", ondelete="SET NULL"))
    fulfilled_at = db.Column(db.DateTime)
    fulfilled_by = db.Column(db.Integer, db.ForeignKey("end_users.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    requester = db.relationship("EndUser", foreign_keys=[requester_id], lazy="joined")
    site = db.relationship("Site", lazy="joined")
    area = db.relationship("Area", lazy="joined")
    items = db.relationship(
        "RequestItem", back_populates="request", lazy="selectin", cascade="all, delete-orphan",
    )
    approvals = db.relationship(
        "RequestApproval",
        back_populates="request",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="RequestApproval.level_order",
    )

    # ── Derived values ───────────────────────────────────────────────────

    @property
    def total_value(self) -> Decimal:
        """Sum of cost × quantity over priced items."""
        total = Decimal("0")
        for item in self.items:
            cost = item.unit_cost
            if cost is None or cost.is_nan():
                continue
            total += cost * item.quantity
        return total.quantize(Decimal("0.01"))

    @property
    def unpriced_item_count(self) -> int:
        return sum(
            1 for item in self.items
            if item.unit_cost is None or item.unit_cost.is_nan()
        )

    @property
    def current_level(self):
        """The level instance awaiting a decision, or None."""
        for approval in self.approvals:
            if approval.status == LEVEL_PENDING:
                return approval
        return None

    def items_by_category(self) -> dict:
        grouped: dict[str, list] = {}
        for item in self.items:
            name = UNCATEGORIZED
            cat = item.catalogue_item.category if item.catalogue_item else None
            if cat is not None:
                name = cat.name
            grouped.setdefault(name, []).append(item.to_dict())
        return grouped

    def to_dict(self, include_items=True):
        current = self.current_level
        d = {
            "id": self.id,
            "status": self.status,
            "priority": self.priority,
            "notes": self.notes,
            "requestedByDate": _iso(self.requested_by_date),
            "requester": {
                "id": self.requester_id,
                "username": self.requester.username if self.requester else None,
                "name": self.requester.full_name if self.requester else None,
            },
            "site": {"id": self.site_id, "name": self.site.name if self.site else None},
            "area": {"id": self.area_id, "name": self.area.name if self.area else None},
            "totalValue": float(self.total_value),
            "unpricedItemCount": self.unpriced_item_count,
            "itemCount": len(self.items),
            "workflow": {
                "id": self.workflow_id,
                "name": self.workflow_name,
                "version": self.workflow_version,
                "approvalLevels": [a.to_dict() for a in self.approvals],
            },
            "currentLevel": current.level_order if current else None,
            "createdAt": _iso(self.created_at),
            "approvedAt": _iso(self.approved_at),
            "approvedBy": self.approved_by,
            "fulfilledAt": _iso(self.fulfilled_at),
            "fulfilledBy": self.fulfilled_by,
        }
        if include_items:
            d["items"] = [item.to_dict() for item in self.items]
            d["itemsByCategory"] = self.items_by_category()
        return d


class RequestItem(db.Model):
    __tablename__ = "request_items"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.Integer, db.ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    catalogue_item_id = db.Column(
        db.Integer, db.ForeignKey("catalogue_items.id", ondelete="RESTRICT"), nullable=False
    )
    quantity = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text)

    request = db.relationship("Request", back_populates="items")
    catalogue_item = db.relationship("CatalogueItem", lazy="joined")

    @property
    def unit_cost(self):
        if self.catalogue_item is None or self.catalogue_item.cost_per_unit is None:
            return None
        return Decimal(str(self.catalogue_item.cost_per_unit))

    def to_dict(self):
        cost = self.unit_cost
        priced = cost is not None and not cost.is_nan()
        return {
            "id": self.id,
            "catalogueItemId": self.catalogue_item_id,
            "name": self.catalogue_item.name if self.catalogue_item else None,
            "unit": self.catalogue_item.unit if self.catalogue_item else None,
            "quantity": self.quantity,
            "notes": self.notes,
            "costPerUnit": float(cost) if priced else None,
            "lineTotal": float((cost * self.quantity).quantize(Decimal("0.01"))) if priced else None,
            "unpriced": not priced,
        }


class RequestApproval(db.Model):
    """Runtime approval-level instance; one row per template level per request."""

    __tablename__ = "request_approvals"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.Integer, db.ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    level_order = db.Column(db.Integer, nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="SET NULL"), nullable=True)
    role_name = db.Column(db.String(100))
    status = db.Column(db.String(20), nullable=False, default=LEVEL_AWAITING)
    approved_by = db.Column(db.Integer, db.ForeignKey("end_users.id", ondelete="SET NULL"))
    approved_at = db.Column(db.DateTime)
    comments = db.Column(db.Text)
    rejection_reason = db.Column(db.Text)

    __table_args__ = (
        db.UniqueConstraint("request_id", "level_order", name="uq_request_approval_level"),
    )

    request = db.relationship("Request", back_populates="approvals")

    def to_dict(self):
        return {
            "id": self.id,
            "levelOrder": self.level_order,
            "roleId": self.role_id,
            "roleName": self.role_name,
            "status": self.status,
            "approvedBy": self.approved_by,
            "approvedAt": _iso(self.approved_at),
            "comments": self.comments,
            "rejectionReason": self.rejection_reason,
        }
