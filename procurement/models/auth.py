"""
Auth Models - organizations, end users, roles, permissions, role assignments
and access grants.

Two independent axes describe what a staff member may do:
  - role assignments (user_roles): which permissions the user holds at a
    location (org-wide, one site, or one area)
  - access grants (end_user_sites / end_user_areas / end_user_categories):
    which sites, areas and catalogue categories the user may see
"""

from datetime import datetime, timezone

from procurement.models import db
from procurement.models.base import OrgModel

ROLE_SCOPES = ("organization", "site", "area")
DEFAULT_ROLE_COLOR = "#10B981"
LEGACY_USER_ROLES = ("STAFF", "PROCUREMENT", "APPROVER_L1", "APPROVER_L2", "ADMIN")


def _iso(value):
    return value.isoformat() if value else None


# ═══════════════════════════════════════════════════════════════
# 1. ORGANIZATIONS
# ═══════════════════════════════════════════════════════════════
class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    settings = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    users = db.relationship("EndUser", back_populates="organization", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "isActive": self.is_active,
            "settings": self.settings or {},
            "createdAt": _iso(self.created_at),
        }


# ═══════════════════════════════════════════════════════════════
# 2. ACCESS GRANT JUNCTIONS
# ═══════════════════════════════════════════════════════════════
end_user_sites = db.Table(
    "end_user_sites",
    db.Column("end_user_id", db.Integer, db.ForeignKey("end_users.id", ondelete="CASCADE"), primary_key=True),
    db.Column("site_id", db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"), primary_key=True),
)

end_user_areas = db.Table(
    "end_user_areas",
    db.Column("end_user_id", db.Integer, db.ForeignKey("end_users.id", ondelete="CASCADE"), primary_key=True),
    db.Column("area_id", db.Integer, db.ForeignKey("areas.id", ondelete="CASCADE"), primary_key=True),
)

end_user_categories = db.Table(
    "end_user_categories",
    db.Column("end_user_id", db.Integer, db.ForeignKey("end_users.id", ondelete="CASCADE"), primary_key=True),
    db.Column("category_id", db.Integer, db.ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)


# ═══════════════════════════════════════════════════════════════
# 3. END USERS (staff accounts)
# ═══════════════════════════════════════════════════════════════
class EndUser(OrgModel):
    __tablename__ = "end_users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(200))
    password_hash = db.Column(db.String(256), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.String(30), default="STAFF", nullable=False)  # legacy single-role label
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    last_login_at = db.Column(db.DateTime)

    __table_args__ = (
        db.UniqueConstraint("organization_id", "username", name="uq_end_user_org_username"),
    )

    organization = db.relationship("Organization", back_populates="users")
    role_assignments = db.relationship(
        "UserRole", back_populates="user", lazy="dynamic",
        cascade="all, delete-orphan", foreign_keys="UserRole.user_id",
    )
    sites = db.relationship("Site", secondary=end_user_sites, lazy="selectin")
    areas = db.relationship("Area", secondary=end_user_areas, lazy="selectin")
    categories = db.relationship("Category", secondary=end_user_categories, lazy="selectin")

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self, include_access=True):
        d = {
            "id": self.id,
            "organizationId": self.organization_id,
            "username": self.username,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role,
            "isActive": self.is_active,
            "createdAt": _iso(self.created_at),
            "lastLoginAt": _iso(self.last_login_at),
        }
        if include_access:
            d["sites"] = [{"id": s.id, "name": s.name} for s in self.sites]
            d["areas"] = [{"id": a.id, "name": a.name, "siteId": a.site_id} for a in self.areas]
            d["categories"] = [{"id": c.id, "name": c.name} for c in self.categories]
        return d


# ═══════════════════════════════════════════════════════════════
# 4. PERMISSIONS (system catalogue, not org-scoped)
# ═══════════════════════════════════════════════════════════════
class Permission(db.Model):
    __tablename__ = "permissions"

    id = db.Column(db.Integer, primary_key=True)
    category = db.Column(db.String(50), nullable=False)
    action = db.Column(db.String(80), nullable=False)
    description = db.Column(db.Text)
    scope = db.Column(db.String(20), default="organization", nullable=False)

    __table_args__ = (
        db.UniqueConstraint("category", "action", name="uq_permission_category_action"),
    )

    @property
    def full_name(self):
        return f"{self.category}.{self.action}"

    def to_dict(self):
        return {
            "id": self.id,
            "category": self.category,
            "action": self.action,
            "fullName": self.full_name,
            "description": self.description,
            "scope": self.scope,
        }


# ═══════════════════════════════════════════════════════════════
# 5. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(OrgModel):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    scope = db.Column(db.String(20), default="organization", nullable=False)
    color = db.Column(db.String(20), default=DEFAULT_ROLE_COLOR, nullable=False)
    is_system = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("organization_id", "name", name="uq_role_org_name"),
    )

    role_permissions = db.relationship(
        "RolePermission", back_populates="role", lazy="selectin", cascade="all, delete-orphan",
    )
    user_roles = db.relationship("UserRole", back_populates="role", lazy="dynamic")

    @property
    def permission_names(self):
        return sorted(rp.permission.full_name for rp in self.role_permissions)

    def to_dict(self, include_permissions=True, user_count=None):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "scope": self.scope,
            "color": self.color,
            "isSystem": self.is_system,
            "permissionCount": len(self.role_permissions),
            "createdAt": _iso(self.created_at),
        }
        if include_permissions:
            d["permissions"] = [rp.permission.to_dict() for rp in self.role_permissions]
        if user_count is not None:
            d["userCount"] = user_count
        return d


# ═══════════════════════════════════════════════════════════════
# 6. ROLE_PERMISSIONS (Junction table)
# ═══════════════════════════════════════════════════════════════
class RolePermission(db.Model):
    __tablename__ = "role_permissions"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    permission_id = db.Column(
        db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        db.UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )

    role = db.relationship("Role", back_populates="role_permissions")
    permission = db.relationship("Permission", lazy="joined")


# ═══════════════════════════════════════════════════════════════
# 7. USER_ROLES (role assignment at a location)
# ═══════════════════════════════════════════════════════════════
class UserRole(db.Model):
    """One role held by one user at one location.

    site_id and area_id are mutually exclusive; both NULL means the grant is
    organization-wide.
    """
    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("end_users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    site_id = db.Column(db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"), nullable=True)
    area_id = db.Column(db.Integer, db.ForeignKey("areas.id", ondelete="CASCADE"), nullable=True)
    assigned_by = db.Column(db.Integer, db.ForeignKey("end_users.id", ondelete="SET NULL"), nullable=True)
    assigned_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("user_id", "role_id", "site_id", "area_id", name="uq_user_role_location"),
        db.CheckConstraint(
            "site_id IS NULL OR area_id IS NULL", name="ck_user_role_single_location"
        ),
    )

    user = db.relationship("EndUser", back_populates="role_assignments", foreign_keys=[user_id])
    role = db.relationship("Role", back_populates="user_roles")

    def to_dict(self):
        return {
            "id": self.role_id,
            "assignmentId": self.id,
            "name": self.role.name if self.role else None,
            "color": self.role.color if self.role else None,
            "scope": self.role.scope if self.role else None,
            "siteId": self.site_id,
            "areaId": self.area_id,
            "assignedAt": _iso(self.assigned_at),
        }
