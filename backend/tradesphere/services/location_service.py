# Overview: Service-layer operations for warehouses and their storage-location hierarchy.

"""
Location Directory

HIERARCHY: ZONE -> RACK -> SHELF -> BIN.
- A ZONE has no parent.
- Every other type must have a parent of the immediately preceding type,
  in the same warehouse.
- capacity is only accepted on BIN locations (not enforced on receipts).

DEFAULT LOCATION: order receipts and shipments resolve a single location per
warehouse: the active location with the lowest code.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Location, Warehouse, LOCATION_TYPES
from ..validation import optional_text, require_choice, require_positive_int, require_text
from .concurrency import run_in_transaction


VALID_PARENT_TYPE = {
    "ZONE": None,
    "RACK": "ZONE",
    "SHELF": "RACK",
    "BIN": "SHELF",
}


def valid_parent_type(location_type: str) -> str | None:
    """Parent type required for a location of this type (None for ZONE)."""
    return VALID_PARENT_TYPE[location_type]


# =============================================================================
# WAREHOUSES
# =============================================================================

def create_warehouse(
    *,
    code: str,
    name: str,
    address: str | None = None,
    description: str | None = None,
) -> Warehouse:
    code = require_text(code, "code", 64).upper()
    name = require_text(name, "name")
    address = optional_text(address, "address")
    description = optional_text(description, "description")

    def _op():
        if db.session.query(Warehouse).filter_by(code=code).first():
            raise ValidationError(f"Warehouse code '{code}' already exists", {"code": code})

        warehouse = Warehouse(code=code, name=name, address=address, description=description)
        db.session.add(warehouse)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ValidationError(f"Warehouse code '{code}' already exists", {"code": code}) from exc
        return warehouse

    return run_in_transaction(_op)


def get_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = db.session.query(Warehouse).filter_by(id=warehouse_id).first()
    if warehouse is None:
        raise NotFound("warehouse", warehouse_id)
    return warehouse


def list_warehouses(*, include_inactive: bool = False) -> list[Warehouse]:
    query = db.session.query(Warehouse)
    if not include_inactive:
        query = query.filter(Warehouse.is_active.is_(True))
    return query.order_by(Warehouse.code.asc()).all()


# =============================================================================
# LOCATIONS
# =============================================================================

def create_location(
    *,
    warehouse_id: int,
    code: str,
    name: str,
    type: str,
    parent_id: int | None = None,
    capacity=None,
) -> Location:
    """
    Create a storage location.

    Raises:
        NotFound: warehouse or parent missing
        ValidationError: bad type, hierarchy violation, duplicate code in
            the warehouse, capacity on a non-BIN location
    """
    code = require_text(code, "code", 64).upper()
    name = require_text(name, "name")
    location_type = require_choice(type, "type", LOCATION_TYPES)
    warehouse_id = require_positive_int(warehouse_id, "warehouse_id")
    if parent_id is not None:
        parent_id = require_positive_int(parent_id, "parent_id")

    if capacity is not None:
        if location_type != "BIN":
            raise ValidationError(
                "capacity can only be set on BIN locations",
                {"type": location_type},
            )
        capacity = require_positive_int(capacity, "capacity")

    def _op():
        get_warehouse(warehouse_id)

        expected_parent = valid_parent_type(location_type)
        if expected_parent is None:
            if parent_id is not None:
                raise ValidationError(
                    "ZONE locations cannot have a parent",
                    {"type": location_type, "parent_id": parent_id},
                )
        else:
            if parent_id is None:
                raise ValidationError(
                    f"{location_type} locations require a {expected_parent} parent",
                    {"type": location_type},
                )
            parent = db.session.query(Location).filter_by(id=parent_id).first()
            if parent is None:
                raise NotFound("location", parent_id)
            if parent.warehouse_id != warehouse_id:
                raise ValidationError(
                    "Parent location belongs to a different warehouse",
                    {"parent_id": parent_id, "warehouse_id": warehouse_id},
                )
            if parent.type != expected_parent:
                raise ValidationError(
                    f"{location_type} parent must be a {expected_parent}, got {parent.type}",
                    {"type": location_type, "parent_type": parent.type},
                )

        duplicate = db.session.query(Location).filter_by(warehouse_id=warehouse_id, code=code).first()
        if duplicate:
            raise ValidationError(
                f"Location code '{code}' already exists in this warehouse",
                {"code": code, "warehouse_id": warehouse_id},
            )

        location = Location(
            warehouse_id=warehouse_id,
            parent_id=parent_id,
            code=code,
            name=name,
            type=location_type,
            capacity=capacity,
        )
        db.session.add(location)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ValidationError(
                f"Location code '{code}' already exists in this warehouse",
                {"code": code, "warehouse_id": warehouse_id},
            ) from exc
        return location

    return run_in_transaction(_op)


def set_location_active(location_id: int, is_active: bool) -> Location:
    def _op():
        location = get_location(location_id)
        location.is_active = bool(is_active)
        db.session.flush()
        return location

    return run_in_transaction(_op)


def get_location(location_id: int) -> Location:
    location = db.session.query(Location).filter_by(id=location_id).first()
    if location is None:
        raise NotFound("location", location_id)
    return location


def list_locations(
    *,
    warehouse_id: int | None = None,
    type: str | None = None,
    include_inactive: bool = False,
) -> list[Location]:
    query = db.session.query(Location)
    if warehouse_id is not None:
        query = query.filter(Location.warehouse_id == warehouse_id)
    if type:
        query = query.filter(Location.type == require_choice(type, "type", LOCATION_TYPES))
    if not include_inactive:
        query = query.filter(Location.is_active.is_(True))
    return query.order_by(Location.warehouse_id.asc(), Location.code.asc()).all()


def default_location(warehouse_id: int) -> Location:
    """Lowest-code active location of the warehouse."""
    warehouse_id = require_positive_int(warehouse_id, "warehouse_id")
    get_warehouse(warehouse_id)
    location = (
        db.session.query(Location)
        .filter(Location.warehouse_id == warehouse_id, Location.is_active.is_(True))
        .order_by(Location.code.asc(), Location.id.asc())
        .first()
    )
    if location is None:
        raise NotFound(
            "location",
            None,
            f"Warehouse {warehouse_id} has no active locations",
        )
    return location


def location_path(location: Location) -> str:
    """Slash-joined codes from the zone down, e.g. "A/A-01/A-01-3/A-01-3-B"."""
    codes = []
    node = location
    seen = set()
    while node is not None and node.id not in seen:
        seen.add(node.id)
        codes.append(node.code)
        node = node.parent
    return "/".join(reversed(codes))
