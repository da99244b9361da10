"""
Option groups (Size, Color, ...) and their values (S, M, Red, ...).

A group cannot be deleted while it still has values, and a value cannot be
deleted while a variant uses it.
"""
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.models import OptionGroup, OptionValue, ProductListing
from app.schemas import isoformat, str_id

logger = logging.getLogger(__name__)

OPTION_GROUP_TYPES = ("select", "color", "size", "radio")


# =====================================================
# SERIALIZATION
# =====================================================

def serialize_option_value(value: OptionValue, include_group: bool = True) -> Dict[str, Any]:
    data = {
        "id": str(value.id),
        "value": value.value,
        "displayName": value.display_name,
        "sortOrder": value.sort_order,
        "isActive": value.is_active,
        "optionGroup": str_id(value.option_group_id),
        "createdAt": isoformat(value.created_at),
    }
    if include_group and value.option_group is not None:
        data["optionGroup"] = {
            "id": str(value.option_group.id),
            "name": value.option_group.name,
            "displayName": value.option_group.display_name,
        }
    return data


def serialize_option_group(group: OptionGroup, include_values: bool = True) -> Dict[str, Any]:
    data = {
        "id": str(group.id),
        "name": group.name,
        "displayName": group.display_name,
        "type": group.type,
        "sortOrder": group.sort_order,
        "isActive": group.is_active,
        "productListings": [str(l.id) for l in group.product_listings],
        "createdAt": isoformat(group.created_at),
    }
    if include_values:
        data["optionValues"] = [serialize_option_value(v, include_group=False) for v in group.option_values]
    return data


def _paginated(query, page: int, page_size: int, serializer) -> Dict[str, Any]:
    total = query.count()
    rows = query.offset((page - 1) * page_size).limit(page_size).all()
    return {
        "data": [serializer(r) for r in rows],
        "meta": {
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "pageCount": (total + page_size - 1) // page_size,
                "total": total,
            }
        },
    }


def _get_listing(db: Session, listing_id) -> ProductListing:
    listing = db.query(ProductListing).filter(ProductListing.id == listing_id).first()
    if not listing:
        raise HTTPException(status_code=404, detail="Product listing not found")
    return listing


# =====================================================
# OPTION GROUPS
# =====================================================

def get_option_group(db: Session, group_id) -> OptionGroup:
    group = db.query(OptionGroup).filter(OptionGroup.id == group_id).first()
    if not group:
        raise HTTPException(status_code=404, detail="Option group not found")
    return group


def list_option_groups(db: Session, page: int = 1, page_size: int = 25, is_active=None) -> Dict[str, Any]:
    query = db.query(OptionGroup)
    if is_active is not None:
        query = query.filter(OptionGroup.is_active.is_(is_active))
    query = query.order_by(OptionGroup.sort_order.asc(), OptionGroup.created_at.desc())
    return _paginated(query, page, page_size, serialize_option_group)


def list_active_option_groups(db: Session) -> List[OptionGroup]:
    return (
        db.query(OptionGroup)
        .filter(OptionGroup.is_active.is_(True))
        .order_by(OptionGroup.sort_order.asc())
        .all()
    )


def list_groups_for_listing(db: Session, listing_id) -> List[OptionGroup]:
    listing = _get_listing(db, listing_id)
    return sorted(listing.option_groups, key=lambda g: (g.sort_order or 0, g.name))


def _check_group_type(group_type: Optional[str]) -> None:
    if group_type is not None and group_type not in OPTION_GROUP_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid option group type. Must be one of: {', '.join(OPTION_GROUP_TYPES)}",
        )


def create_option_group(db: Session, data: Dict[str, Any]) -> OptionGroup:
    if not data.get("name") or not data.get("display_name"):
        raise HTTPException(status_code=400, detail="Name and display name are required")
    _check_group_type(data.get("type"))

    group = OptionGroup(
        name=data["name"],
        display_name=data["display_name"],
        type=data.get("type") or "select",
        sort_order=data.get("sort_order") or 0,
        is_active=data.get("is_active", True),
    )
    if data.get("product_listings"):
        group.product_listings = [_get_listing(db, lid) for lid in data["product_listings"]]

    db.add(group)
    db.commit()
    db.refresh(group)

    logger.info("Option group %s (%s) created", group.id, group.name)
    return group


def create_option_group_with_values(db: Session, data: Dict[str, Any], values: List[Dict[str, Any]]) -> Dict[str, Any]:
    group = create_option_group(db, data)
    result = bulk_create_option_values(
        db,
        [{**v, "optionGroup": str(group.id)} for v in values],
    )
    db.refresh(group)
    return {"optionGroup": serialize_option_group(group), "defaultValues": result["created"]}


def update_option_group(db: Session, group_id, data: Dict[str, Any]) -> OptionGroup:
    group = get_option_group(db, group_id)

    for field in ("name", "display_name"):
        if field in data and not data[field]:
            raise HTTPException(status_code=400, detail="Name and display name are required")
    _check_group_type(data.get("type"))

    for field in ("name", "display_name", "type", "sort_order", "is_active"):
        if field in data and data[field] is not None:
            setattr(group, field, data[field])
    if "product_listings" in data and data["product_listings"] is not None:
        group.product_listings = [_get_listing(db, lid) for lid in data["product_listings"]]

    db.commit()
    db.refresh(group)
    return group


def delete_option_group(db: Session, group_id) -> None:
    group = get_option_group(db, group_id)
    if group.option_values:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete option group with existing option values",
        )

    db.delete(group)
    db.commit()
    logger.info("Option group %s deleted", group_id)


# =====================================================
# OPTION VALUES
# =====================================================

def get_option_value(db: Session, value_id) -> OptionValue:
    value = db.query(OptionValue).filter(OptionValue.id == value_id).first()
    if not value:
        raise HTTPException(status_code=404, detail="Option value not found")
    return value


def list_option_values(db: Session, page: int = 1, page_size: int = 25, option_group=None) -> Dict[str, Any]:
    query = db.query(OptionValue)
    if option_group is not None:
        query = query.filter(OptionValue.option_group_id == option_group)
    query = query.order_by(OptionValue.sort_order.asc(), OptionValue.created_at.desc())
    return _paginated(query, page, page_size, serialize_option_value)


def list_active_option_values(db: Session) -> List[OptionValue]:
    return (
        db.query(OptionValue)
        .filter(OptionValue.is_active.is_(True))
        .order_by(OptionValue.sort_order.asc())
        .all()
    )


def list_values_for_group(db: Session, group_id) -> List[OptionValue]:
    return (
        db.query(OptionValue)
        .filter(OptionValue.option_group_id == group_id)
        .order_by(OptionValue.sort_order.asc())
        .all()
    )


def list_values_for_listing(db: Session, listing_id) -> List[OptionValue]:
    listing = _get_listing(db, listing_id)
    group_ids = [g.id for g in listing.option_groups]
    if not group_ids:
        return []
    return (
        db.query(OptionValue)
        .filter(OptionValue.option_group_id.in_(group_ids))
        .order_by(OptionValue.sort_order.asc())
        .all()
    )


def _parse_group_id(raw) -> Optional[UUID]:
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw))
    except ValueError:
        return None


def create_option_value(db: Session, data: Dict[str, Any]) -> OptionValue:
    if not data.get("value") or not data.get("display_name") or not data.get("option_group"):
        raise HTTPException(
            status_code=400,
            detail="Value, display name, and option group are required",
        )

    group_id = _parse_group_id(data["option_group"])
    if group_id is None or not db.query(OptionGroup).filter(OptionGroup.id == group_id).first():
        raise HTTPException(status_code=400, detail="Option group not found")

    value = OptionValue(
        option_group_id=group_id,
        value=data["value"],
        display_name=data["display_name"],
        sort_order=data.get("sort_order") or 1,
        is_active=data.get("is_active", True),
    )
    db.add(value)
    db.commit()
    db.refresh(value)

    logger.info("Option value %s (%s) created in group %s", value.id, value.value, group_id)
    return value


def update_option_value(db: Session, value_id, data: Dict[str, Any]) -> OptionValue:
    value = get_option_value(db, value_id)

    for field in ("value", "display_name"):
        if field in data and not data[field]:
            raise HTTPException(status_code=400, detail="Value and display name cannot be empty")

    if data.get("option_group") is not None:
        group_id = _parse_group_id(data["option_group"])
        if group_id is None or not db.query(OptionGroup).filter(OptionGroup.id == group_id).first():
            raise HTTPException(status_code=400, detail="Option group not found")
        value.option_group_id = group_id

    for field in ("value", "display_name", "sort_order", "is_active"):
        if field in data and data[field] is not None:
            setattr(value, field, data[field])

    db.commit()
    db.refresh(value)
    return value


def delete_option_value(db: Session, value_id) -> None:
    value = get_option_value(db, value_id)
    if value.variants:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete option value that is used in variants",
        )

    db.delete(value)
    db.commit()
    logger.info("Option value %s deleted", value_id)


def bulk_create_option_values(db: Session, items: Any) -> Dict[str, Any]:
    """Create each entry independently; failures are collected, not raised."""
    if items is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Option values data is required")
    if not isinstance(items, list):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Option values data must be an array",
        )

    created = []
    errors = []
    for item in items:
        if not isinstance(item, dict):
            errors.append("Each option value must be an object")
            continue

        data = {
            "value": item.get("value"),
            "display_name": item.get("displayName"),
            "option_group": item.get("optionGroup"),
            "sort_order": item.get("sortOrder") or 1,
            "is_active": item.get("isActive", True),
        }
        try:
            value = create_option_value(db, data)
        except HTTPException as exc:
            db.rollback()
            errors.append(f"Failed to create option value: {exc.detail}")
            continue
        created.append(serialize_option_value(value))

    logger.info("Bulk created %d option values (%d errors)", len(created), len(errors))
    return {"success": len(created), "errors": errors, "created": created}
