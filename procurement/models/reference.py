"""
Reference data - sites, areas, categories and catalogue items.

Flat organization-owned entities consumed by requests, role assignments and
access grants.
"""

from datetime import datetime, timezone

from procurement.models import db
from procurement.models.base import OrgModel


class Site(OrgModel):
    __tablename__ = "sites"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    address = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    areas = db.relationship(
        "Area", back_populates="site", lazy="selectin",
        cascade="all, delete-orphan", order_by="Area.name",
    )

    def to_dict(self, include_areas=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "address": self.address,
            "isActive": self.is_active,
        }
        if include_areas:
            d["areas"] = [a.to_dict() for a in self.areas]
        return d


class Area(OrgModel):
    __tablename__ = "areas"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(
        db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    site = db.relationship("Site", back_populates="areas")

    def to_dict(self):
        return {
            "id": self.id,
            "siteId": self.site_id,
            "name": self.name,
            "description": self.description,
            "isActive": self.is_active,
        }


class Category(OrgModel):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("organization_id", "name", name="uq_category_org_name"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isActive": self.is_active,
        }


class CatalogueItem(OrgModel):
    __tablename__ = "catalogue_items"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    unit = db.Column(db.String(50), nullable=False)
    cost_per_unit = db.Column(db.Numeric(10, 2), nullable=True)  # NULL = unpriced
    category_id = db.Column(
        db.Integer, db.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    supplier = db.Column(db.String(200))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    category = db.relationship("Category", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "unit": self.unit,
            "costPerUnit": float(self.cost_per_unit) if self.cost_per_unit is not None else None,
            "categoryId": self.category_id,
            "categoryName": self.category.name if self.category else None,
            "supplier": self.supplier,
            "isActive": self.is_active,
        }
