"""
Address book rules.

An owner (a user or a guest session) may hold many addresses but at most
one default per type-class. ``both`` addresses overlap every class, so
promoting any address clears the defaults of every address it overlaps.
All rebalancing happens inside a single transaction with the owner's rows
locked, so two concurrent "set default" calls cannot both win.
"""
import csv
import io
import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.dependencies import Caller
from app.models import Address
from app.schemas import isoformat, str_id
from app.services.address_validation import (
    ADDRESS_TYPES,
    format_address,
    validate_address,
)

logger = logging.getLogger(__name__)

# Types whose defaults conflict with a default of the key type
OVERLAPPING_TYPES = {
    "shipping": ("shipping", "both"),
    "billing": ("billing", "both"),
    "both": ("shipping", "billing", "both"),
}

MAX_IMPORT = 100

EXPORT_COLUMNS = [
    ("Type", "type"),
    ("First Name", "first_name"),
    ("Last Name", "last_name"),
    ("Company", "company"),
    ("Address 1", "address1"),
    ("Address 2", "address2"),
    ("City", "city"),
    ("State", "state"),
    ("Postal Code", "postal_code"),
    ("Country", "country"),
    ("Phone", "phone"),
    ("Is Default", "is_default"),
    ("Created At", "created_at"),
]

EDITABLE_FIELDS = (
    "type",
    "first_name",
    "last_name",
    "company",
    "address1",
    "address2",
    "city",
    "state",
    "postal_code",
    "country",
    "phone",
)


# =====================================================
# HELPERS
# =====================================================

def serialize_address(address: Address) -> Dict[str, Any]:
    return {
        "id": str(address.id),
        "type": address.type,
        "isDefault": address.is_default,
        "firstName": address.first_name,
        "lastName": address.last_name,
        "company": address.company,
        "address1": address.address1,
        "address2": address.address2,
        "city": address.city,
        "state": address.state,
        "postalCode": address.postal_code,
        "country": address.country,
        "phone": address.phone,
        "user": str_id(address.user_id),
        "sessionId": address.session_id,
        "createdAt": isoformat(address.created_at),
        "updatedAt": isoformat(address.updated_at),
    }


def check_type(address_type: str) -> str:
    if address_type not in ADDRESS_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid address type: {address_type}. Must be one of: shipping, billing, both",
        )
    return address_type


def _owned(db: Session, caller: Caller):
    query = db.query(Address)
    if caller.user:
        return query.filter(Address.user_id == caller.user.id)
    return query.filter(Address.session_id == caller.session_id, Address.user_id.is_(None))


def _lock_owner_rows(db: Session, caller: Caller) -> None:
    # FOR UPDATE is dropped by dialects without row locks (SQLite).
    # Rows already in the session are overwritten with the locked read.
    _owned(db, caller).with_for_update().populate_existing().all()


def _newest_first(query):
    return query.order_by(Address.is_default.desc(), Address.created_at.desc())


def _clear_defaults(db: Session, caller: Caller, address_type: str, exclude_id=None) -> None:
    query = _owned(db, caller).filter(
        Address.type.in_(OVERLAPPING_TYPES[address_type]),
        Address.is_default.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(Address.id != exclude_id)
    query.update({"is_default": False}, synchronize_session="fetch")


def _has_default(db: Session, caller: Caller, address_type: str, exclude_id=None) -> bool:
    query = _owned(db, caller).filter(
        Address.type.in_(OVERLAPPING_TYPES[address_type]),
        Address.is_default.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(Address.id != exclude_id)
    return query.first() is not None


def _validated(data: Dict[str, Any]) -> Dict[str, Any]:
    result = validate_address(data)
    if not result["isValid"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Validation failed: " + "; ".join(result["errors"]),
        )
    return format_address({k: v for k, v in data.items() if k in EDITABLE_FIELDS})


def get_owned_address(db: Session, address_id, caller: Caller) -> Address:
    address = db.query(Address).filter(Address.id == address_id).first()
    if not address:
        raise HTTPException(status_code=404, detail="Address not found")

    if caller.user:
        allowed = address.user_id == caller.user.id
    else:
        allowed = address.user_id is None and address.session_id == caller.session_id

    if not allowed:
        raise HTTPException(status_code=403, detail="You can only access your own addresses")
    return address


# =====================================================
# QUERIES
# =====================================================

def list_addresses(db: Session, caller: Caller, address_type: Optional[str] = None) -> List[Address]:
    query = _owned(db, caller)
    if address_type:
        query = query.filter(Address.type.in_(OVERLAPPING_TYPES[check_type(address_type)]))
    return _newest_first(query).all()


def find_by_type(db: Session, caller: Caller, address_type: str) -> List[Address]:
    check_type(address_type)
    query = _owned(db, caller)
    if address_type != "both":
        query = query.filter(Address.type.in_(OVERLAPPING_TYPES[address_type]))
    return _newest_first(query).all()


def get_default_address(db: Session, caller: Caller, address_type: str) -> Optional[Address]:
    check_type(address_type)
    return (
        _owned(db, caller)
        .filter(
            Address.type.in_(OVERLAPPING_TYPES[address_type]),
            Address.is_default.is_(True),
        )
        .order_by(Address.created_at.desc())
        .first()
    )


def search_addresses(db: Session, caller: Caller, filters: Dict[str, Any]) -> List[Address]:
    query = _owned(db, caller)

    text = (filters.get("query") or "").strip()
    if text:
        pattern = f"%{text}%"
        query = query.filter(
            or_(
                Address.first_name.ilike(pattern),
                Address.last_name.ilike(pattern),
                Address.company.ilike(pattern),
                Address.address1.ilike(pattern),
                Address.city.ilike(pattern),
                Address.postal_code.ilike(pattern),
            )
        )
    if filters.get("type"):
        query = query.filter(Address.type.in_(OVERLAPPING_TYPES[check_type(filters["type"])]))
    for field in ("country", "state", "city"):
        if filters.get(field):
            query = query.filter(getattr(Address, field).ilike(filters[field]))

    return _newest_first(query).all()


def get_stats(db: Session, caller: Caller) -> Dict[str, int]:
    addresses = _owned(db, caller).all()
    by_type = Counter(a.type for a in addresses)
    return {
        "total": len(addresses),
        "shipping": by_type.get("shipping", 0),
        "billing": by_type.get("billing", 0),
        "both": by_type.get("both", 0),
        "defaults": sum(1 for a in addresses if a.is_default),
    }


def get_address_book(db: Session, caller: Caller) -> Dict[str, Any]:
    addresses = _newest_first(_owned(db, caller)).all()
    return {
        "shipping": [serialize_address(a) for a in addresses if a.type in OVERLAPPING_TYPES["shipping"]],
        "billing": [serialize_address(a) for a in addresses if a.type in OVERLAPPING_TYPES["billing"]],
        "all": [serialize_address(a) for a in addresses],
        "stats": get_stats(db, caller),
    }


def export_addresses(db: Session, caller: Caller, fmt: str = "json"):
    addresses = _newest_first(_owned(db, caller)).all()

    if fmt == "json":
        return [serialize_address(a) for a in addresses]
    if fmt != "csv":
        raise HTTPException(status_code=400, detail="Export format must be json or csv")

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([header for header, _ in EXPORT_COLUMNS])
    for address in addresses:
        row = []
        for _, attr in EXPORT_COLUMNS:
            value = getattr(address, attr)
            if attr == "is_default":
                value = "Yes" if value else "No"
            elif attr == "created_at":
                value = isoformat(value)
            row.append("" if value is None else value)
        writer.writerow(row)
    return buffer.getvalue()


def get_analytics(db: Session, caller: Caller) -> Dict[str, Any]:
    addresses = _owned(db, caller).all()
    return {
        "total": len(addresses),
        "byType": dict(Counter(a.type for a in addresses)),
        "byCountry": dict(Counter(a.country for a in addresses)),
        "byState": dict(Counter(a.state for a in addresses)),
        "byCity": dict(Counter(a.city for a in addresses)),
    }


# =====================================================
# MUTATIONS
# =====================================================

def create_address(db: Session, caller: Caller, data: Dict[str, Any]) -> Address:
    fields = _validated(data)
    wants_default = bool(data.get("is_default"))

    _lock_owner_rows(db, caller)

    address_type = fields["type"]
    if not _has_default(db, caller, address_type):
        # first address of its type-class
        wants_default = True
    elif wants_default:
        _clear_defaults(db, caller, address_type)

    address = Address(
        user_id=caller.user.id if caller.user else None,
        session_id=None if caller.user else caller.session_id,
        is_default=wants_default,
        **fields,
    )
    db.add(address)
    db.commit()
    db.refresh(address)

    logger.info("Address %s created (type=%s, default=%s)", address.id, address.type, address.is_default)
    return address


def update_address(db: Session, address_id, caller: Caller, data: Dict[str, Any]) -> Address:
    if not data:
        get_owned_address(db, address_id, caller)
        raise HTTPException(status_code=400, detail="No fields provided for update")

    _lock_owner_rows(db, caller)
    address = get_owned_address(db, address_id, caller)

    merged = {field: getattr(address, field) for field in EDITABLE_FIELDS}
    merged.update({k: v for k, v in data.items() if k in EDITABLE_FIELDS})
    fields = _validated(merged)

    was_default = address.is_default
    old_type = address.type
    becomes_default = data.get("is_default") is True or (was_default and data.get("is_default") is not False)
    if becomes_default:
        address.is_default = False
        db.flush()
        _clear_defaults(db, caller, fields["type"], exclude_id=address.id)

    for field, value in fields.items():
        setattr(address, field, value)
    address.is_default = becomes_default

    if was_default:
        # the class this address gave up or moved out of may now lack a default
        db.flush()
        _promote_next_default(db, caller, old_type, exclude_id=address.id)

    db.commit()
    db.refresh(address)
    return address


def _promote_next_default(db: Session, caller: Caller, address_type: str, exclude_id=None) -> Optional[Address]:
    query = _owned(db, caller).filter(Address.type.in_(OVERLAPPING_TYPES[address_type]))
    if exclude_id is not None:
        query = query.filter(Address.id != exclude_id)
    candidates = query.order_by(Address.created_at.desc()).all()

    for candidate in candidates:
        if not _has_default(db, caller, candidate.type, exclude_id=candidate.id):
            candidate.is_default = True
            return candidate
    return None


def delete_address(db: Session, address_id, caller: Caller) -> Optional[Address]:
    address = get_owned_address(db, address_id, caller)

    _lock_owner_rows(db, caller)

    was_default = address.is_default
    address_type = address.type

    db.delete(address)
    db.flush()

    promoted = None
    if was_default:
        promoted = _promote_next_default(db, caller, address_type)

    db.commit()

    if promoted:
        logger.info("Address %s promoted to default after delete of %s", promoted.id, address_id)
    return promoted


def set_as_default(db: Session, address_id, caller: Caller) -> Address:
    address = get_owned_address(db, address_id, caller)

    _lock_owner_rows(db, caller)
    _clear_defaults(db, caller, address.type, exclude_id=address.id)

    address.is_default = True
    db.commit()
    db.refresh(address)

    logger.info("Address %s set as default %s address", address.id, address.type)
    return address


def import_addresses(db: Session, caller: Caller, entries: List[Dict[str, Any]]) -> Dict[str, Any]:
    if len(entries) > MAX_IMPORT:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot import more than {MAX_IMPORT} addresses at once",
        )

    imported = []
    errors = []
    for index, entry in enumerate(entries):
        result = validate_address(entry)
        if not result["isValid"]:
            errors.append({"index": index, "errors": result["errors"]})
            continue
        imported.append(serialize_address(create_address(db, caller, entry)))

    return {"imported": imported, "errors": errors}
