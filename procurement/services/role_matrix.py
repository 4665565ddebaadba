"""
Role assignment matrix - pure functions behind the "access & roles" editor.

A matrix maps ``role_id -> location_key -> bool`` where the location keys are
``org-wide``, ``site-{id}`` and ``area-{id}``.  A *site layout* maps each
site id to the ids of its areas.

Toggle cascade:
  1. checking a site checks every area under it
  2. unchecking a site unchecks every area under it
  3. unchecking an area unchecks its site
  4. checking the last unchecked area of a site checks the site

Rules 3 and 4 only run inside a toggle, and only for the site of the
toggled area; ``implied_site_grants`` derives that site cell from the area
cells.  A loaded matrix takes its site cells from stored site assignments
only, and reports the implied ones separately.

Nothing here touches the database; ``user_service.save_role_matrix`` is the
persistence side.
"""

from __future__ import annotations

from procurement.services.permission_service import (
    ORG_WIDE_KEY,
    location_key,
    parse_location_key,
)

Matrix = dict[int, dict[str, bool]]
SiteLayout = dict[int, list[int]]


def _area_to_site(site_areas: SiteLayout) -> dict[int, int]:
    return {area_id: site_id for site_id, areas in site_areas.items() for area_id in areas}


def location_keys(site_areas: SiteLayout) -> list[str]:
    """All cells of one matrix row, in display order."""
    keys = [ORG_WIDE_KEY]
    for site_id in sorted(site_areas):
        keys.append(location_key(site_id=site_id))
        keys.extend(location_key(area_id=a) for a in sorted(site_areas[site_id]))
    return keys


def implied_site_grants(area_grants: dict[str, bool], site_areas: SiteLayout) -> dict[str, bool]:
    """Site cells implied by area cells: a site is covered when all its areas are.

    Sites with no areas are absent from the result.  This is display and
    toggle state only; a save never turns it into a site grant.
    """
    implied = {}
    for site_id, areas in site_areas.items():
        if not areas:
            continue
        implied[location_key(site_id=site_id)] = all(
            area_grants.get(location_key(area_id=a), False) for a in areas
        )
    return implied


def _full_row(row: dict[str, bool], site_areas: SiteLayout) -> dict[str, bool]:
    return {key: bool(row.get(key, False)) for key in location_keys(site_areas)}


def build_matrix(
    role_ids: list[int],
    site_areas: SiteLayout,
    assignments: list[dict],
) -> Matrix:
    """Build the matrix from stored assignments.

    ``assignments`` items are ``{"roleId", "siteId"?, "areaId"?}``.  A stored
    site grant marks all of that site's areas, as if the site had been
    checked in the editor.  Area grants never check their site.
    """
    matrix: Matrix = {}
    for role_id in role_ids:
        row = {key: False for key in location_keys(site_areas)}
        for a in assignments:
            if a.get("roleId") != role_id:
                continue
            site_id, area_id = a.get("siteId"), a.get("areaId")
            key = location_key(site_id, area_id)
            if key not in row:
                continue
            row[key] = True
            if area_id is None and site_id is not None:
                for child in site_areas.get(site_id, []):
                    row[location_key(area_id=child)] = True
        matrix[role_id] = row
    return matrix


def toggle_assignment(
    matrix: Matrix,
    role_id: int,
    key: str,
    site_areas: SiteLayout,
) -> Matrix:
    """Flip one cell and apply the cascade.  Returns a new matrix."""
    site_id, area_id = parse_location_key(key)
    area_sites = _area_to_site(site_areas)
    if site_id is not None and site_id not in site_areas:
        raise ValueError(f"Unknown site in location key {key!r}")
    if area_id is not None and area_id not in area_sites:
        raise ValueError(f"Unknown area in location key {key!r}")

    new_matrix = {rid: dict(row) for rid, row in matrix.items()}
    row = _full_row(new_matrix.get(role_id, {}), site_areas)
    checked = not row[key]
    row[key] = checked

    if site_id is not None:
        for child in site_areas[site_id]:
            row[location_key(area_id=child)] = checked
    elif area_id is not None:
        parent = location_key(site_id=area_sites[area_id])
        row[parent] = implied_site_grants(row, site_areas)[parent]

    new_matrix[role_id] = row
    return new_matrix


def flatten_matrix(matrix: Matrix) -> list[dict]:
    """Flatten checked cells into ``{roleId, siteId?, areaId?}`` triples."""
    triples = []
    for role_id in sorted(matrix):
        for key, checked in matrix[role_id].items():
            if not checked:
                continue
            site_id, area_id = parse_location_key(key)
            entry = {"roleId": role_id}
            if site_id is not None:
                entry["siteId"] = site_id
            if area_id is not None:
                entry["areaId"] = area_id
            triples.append(entry)
    return triples


def matrix_from_json(raw) -> Matrix:
    """Coerce a JSON matrix (string role ids) back to ``{int: {str: bool}}``.

    Raises ValueError when the matrix or one of its rows is not an object.
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("matrix must be an object keyed by role id")
    matrix: Matrix = {}
    for role_id, row in raw.items():
        if row is None:
            row = {}
        if not isinstance(row, dict):
            raise ValueError(f"row for role {role_id} must be an object keyed by location")
        matrix[int(role_id)] = {str(k): bool(v) for k, v in row.items()}
    return matrix
