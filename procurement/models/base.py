"""
OrgModel - Abstract base class for organization-scoped models.

Every table owned by an organization inherits from OrgModel instead of
db.Model directly. This adds:
  - organization_id FK column with index
  - query_for_org(org_id) classmethod
  - get_for_org(org_id, pk) lookup that hides cross-organization rows
"""

from procurement.models import db


class OrgModel(db.Model):
    """Abstract base for organization-scoped tables."""
    __abstract__ = True

    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_org(cls, org_id):
        """Return a query filtered by organization_id."""
        return cls.query.filter_by(organization_id=org_id)

    @classmethod
    def get_for_org(cls, org_id, pk):
        """Return the row with primary key *pk* if it belongs to *org_id*, else None."""
        if pk is None:
            return None
        return cls.query.filter_by(organization_id=org_id, id=pk).first()
