"""
Reference data service - sites, areas, categories and catalogue items.
"""

import logging
from decimal import Decimal, InvalidOperation

from procurement.core.exceptions import ConflictError, NotFoundError, ValidationError
from procurement.models import db
from procurement.models.reference import Area, CatalogueItem, Category, Site
from procurement.utils.helpers import as_int

logger = logging.getLogger(__name__)


def _required(data: dict, field: str) -> str:
    value = (data.get(field) or "").strip() if isinstance(data.get(field), str) else data.get(field)
    if not value:
        raise ValidationError(f"{field} is required", details={field: "required"})
    return value


def _apply(obj, data: dict, fields: dict) -> None:
    """Copy camelCase payload keys onto model attributes."""
    for key, attr in fields.items():
        if key in data:
            setattr(obj, attr, data[key])


# ── Sites & areas ────────────────────────────────────────────────────────

def list_sites(org_id: int, include_inactive: bool = False) -> list[Site]:
    q = Site.query_for_org(org_id)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(Site.name).all()


def get_site(org_id: int, site_id) -> Site:
    site = Site.get_for_org(org_id, as_int(site_id))
    if site is None:
        raise NotFoundError("Site", site_id)
    return site


def create_site(org_id: int, data: dict) -> Site:
    site = Site(
        organization_id=org_id,
        name=_required(data, "name"),
        description=data.get("description"),
        address=data.get("address"),
    )
    db.session.add(site)
    db.session.commit()
    logger.info("Created site '%s' (id=%d) in org %d", site.name, site.id, org_id)
    return site


def update_site(org_id: int, site_id, data: dict) -> Site:
    site = get_site(org_id, site_id)
    if "name" in data:
        site.name = _required(data, "name")
    _apply(site, data, {"description": "description", "address": "address", "isActive": "is_active"})
    db.session.commit()
    return site


def list_areas(org_id: int, site_id) -> list[Area]:
    site = get_site(org_id, site_id)
    return [a for a in site.areas if a.is_active]


def get_area(org_id: int, area_id) -> Area:
    area = Area.get_for_org(org_id, as_int(area_id))
    if area is None:
        raise NotFoundError("Area", area_id)
    return area


def create_area(org_id: int, site_id, data: dict) -> Area:
    site = get_site(org_id, site_id)
    area = Area(
        organization_id=org_id,
        site_id=site.id,
        name=_required(data, "name"),
        description=data.get("description"),
    )
    db.session.add(area)
    db.session.commit()
    logger.info("Created area '%s' (id=%d) under site %d", area.name, area.id, site.id)
    return area


def update_area(org_id: int, area_id, data: dict) -> Area:
    area = get_area(org_id, area_id)
    if "name" in data:
        area.name = _required(data, "name")
    _apply(area, data, {"description": "description", "isActive": "is_active"})
    db.session.commit()
    return area


# ── Categories ───────────────────────────────────────────────────────────

def list_categories(org_id: int) -> list[Category]:
    return Category.query_for_org(org_id).filter_by(is_active=True).order_by(Category.name).all()


def create_category(org_id: int, data: dict) -> Category:
    name = _required(data, "name")
    if Category.query_for_org(org_id).filter_by(name=name).first():
        raise ConflictError(f"Category '{name}' already exists", details={"name": name})
    category = Category(organization_id=org_id, name=name, description=data.get("description"))
    db.session.add(category)
    db.session.commit()
    return category


# ── Catalogue items ──────────────────────────────────────────────────────

def _parse_cost(value):
    if value is None or value == "":
        return None
    try:
        cost = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("costPerUnit must be a number", details={"costPerUnit": value})
    if cost.is_nan() or cost < 0:
        raise ValidationError("costPerUnit must be a non-negative number", details={"costPerUnit": value})
    return cost.quantize(Decimal("0.01"))


def _resolve_category(org_id: int, category_id):
    if category_id is None:
        return None
    category = Category.get_for_org(org_id, as_int(category_id))
    if category is None:
        raise ValidationError("Unknown category", details={"categoryId": category_id})
    return category.id


def list_catalogue_items(org_id: int, category_id=None, include_inactive: bool = False) -> list[CatalogueItem]:
    q = CatalogueItem.query_for_org(org_id)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    if as_int(category_id) is not None:
        q = q.filter_by(category_id=as_int(category_id))
    return q.order_by(CatalogueItem.name).all()


def get_catalogue_item(org_id: int, item_id) -> CatalogueItem:
    item = CatalogueItem.get_for_org(org_id, as_int(item_id))
    if item is None:
        raise NotFoundError("Catalogue item", item_id)
    return item


def create_catalogue_item(org_id: int, data: dict) -> CatalogueItem:
    item = CatalogueItem(
        organization_id=org_id,
        name=_required(data, "name"),
        unit=_required(data, "unit"),
        description=data.get("description"),
        cost_per_unit=_parse_cost(data.get("costPerUnit")),
        category_id=_resolve_category(org_id, data.get("categoryId")),
        supplier=data.get("supplier"),
    )
    db.session.add(item)
    db.session.commit()
    return item


def update_catalogue_item(org_id: int, item_id, data: dict) -> CatalogueItem:
    item = get_catalogue_item(org_id, item_id)
    if "name" in data:
        item.name = _required(data, "name")
    if "unit" in data:
        item.unit = _required(data, "unit")
    if "costPerUnit" in data:
        item.cost_per_unit = _parse_cost(data["costPerUnit"])
    if "categoryId" in data:
        item.category_id = _resolve_category(org_id, data["categoryId"])
    _apply(item, data, {"description": "description", "supplier": "supplier", "isActive": "is_active"})
    db.session.commit()
    return item
