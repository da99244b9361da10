"""
Product listing variants.

A variant is one purchasable combination of option values on a listing,
for example Size=M + Color=Red. Every variant takes at most one value per
option group, only from groups attached to its listing, and no two
variants of a listing share the same combination.
"""
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.models import OptionValue, ProductListing, ProductListingVariant
from app.schemas import isoformat, str_id

logger = logging.getLogger(__name__)

INVENTORY_OPERATIONS = ("set", "add", "subtract")


# =====================================================
# SERIALIZATION
# =====================================================

def serialize_variant(variant: ProductListingVariant) -> Dict[str, Any]:
    return {
        "id": str(variant.id),
        "sku": variant.sku,
        "basePrice": variant.base_price,
        "discountPrice": variant.discount_price,
        "inventory": variant.inventory,
        "isActive": variant.is_active,
        "productListing": str_id(variant.product_listing_id),
        "optionValues": [
            {
                "id": str(v.id),
                "value": v.value,
                "displayName": v.display_name,
                "optionGroup": str_id(v.option_group_id),
            }
            for v in sorted(variant.option_values, key=lambda v: (v.sort_order or 0, v.value))
        ],
        "createdAt": isoformat(variant.created_at),
        "updatedAt": isoformat(variant.updated_at),
    }


def get_variant(db: Session, variant_id) -> ProductListingVariant:
    variant = db.query(ProductListingVariant).filter(ProductListingVariant.id == variant_id).first()
    if not variant:
        raise HTTPException(status_code=404, detail="Variant not found")
    return variant


def _get_listing(db: Session, listing_id) -> Optional[ProductListing]:
    if listing_id is None:
        return None
    return db.query(ProductListing).filter(ProductListing.id == listing_id).first()


def _load_option_values(db: Session, value_ids) -> List[OptionValue]:
    if not value_ids:
        return []
    return db.query(OptionValue).filter(OptionValue.id.in_(value_ids)).all()


# =====================================================
# VALIDATION
# =====================================================

def sku_taken(db: Session, sku: str, exclude_id=None) -> bool:
    query = db.query(ProductListingVariant).filter(ProductListingVariant.sku == sku)
    if exclude_id is not None:
        query = query.filter(ProductListingVariant.id != exclude_id)
    return query.first() is not None


def validate_option_values(db: Session, value_ids, listing: ProductListing) -> List[str]:
    errors = []

    values = _load_option_values(db, value_ids)
    if len(values) != len(set(value_ids)):
        errors.append("One or more option values not found")

    listing_group_ids = {g.id for g in listing.option_groups}
    value_group_ids = [v.option_group_id for v in values]

    if any(group_id not in listing_group_ids for group_id in value_group_ids):
        errors.append("Option value does not belong to product listing option groups")

    if len(set(value_group_ids)) != len(value_group_ids):
        errors.append("Cannot have multiple values from the same option group")

    return errors


def find_combination(db: Session, listing_id, value_ids, exclude_id=None) -> Optional[ProductListingVariant]:
    """Return the variant of the listing with exactly this set of option values."""
    wanted = set(value_ids)
    query = db.query(ProductListingVariant).filter(ProductListingVariant.product_listing_id == listing_id)
    if exclude_id is not None:
        query = query.filter(ProductListingVariant.id != exclude_id)

    for variant in query.all():
        if {v.id for v in variant.option_values} == wanted:
            return variant
    return None


def validate_variant_data(db: Session, data: Dict[str, Any], variant_id=None) -> List[str]:
    """
    Check a create payload, or an update payload when ``variant_id`` is set.

    On update only the fields present are checked, against the variant's
    stored listing when the payload does not move it.
    """
    errors = []
    creating = variant_id is None

    if creating or "sku" in data:
        sku = (data.get("sku") or "").strip()
        if not sku:
            errors.append("SKU is required")
        elif sku_taken(db, sku, exclude_id=variant_id):
            errors.append("SKU must be unique")

    if creating or "base_price" in data:
        base_price = data.get("base_price")
        if base_price is None or base_price <= 0:
            errors.append("Valid base price is required")

    if data.get("discount_price") is not None and data["discount_price"] < 0:
        errors.append("Discount price cannot be negative")

    if data.get("inventory") is not None and data["inventory"] < 0:
        errors.append("Inventory must be non-negative")

    stored = None if creating else get_variant(db, variant_id)

    listing_id = data.get("product_listing")
    if listing_id is None and stored is not None:
        listing_id = stored.product_listing_id

    listing = _get_listing(db, listing_id)
    if listing_id is None:
        errors.append("Product listing is required")
    elif listing is None:
        errors.append("Product listing not found")

    # An update that moves the variant is checked with the values it already carries
    value_ids = data.get("option_values")
    if value_ids is None:
        value_ids = [v.id for v in stored.option_values] if stored is not None else []

    combination_changed = creating or data.get("product_listing") is not None or data.get("option_values") is not None
    if listing is not None and combination_changed:
        if value_ids:
            errors.extend(validate_option_values(db, value_ids, listing))
        # The empty set is a combination too: one option-less variant per listing
        if not errors and find_combination(db, listing.id, value_ids, exclude_id=variant_id):
            errors.append("A variant with this option combination already exists")

    return errors


def _raise_if_invalid(errors: List[str]) -> None:
    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Validation failed: {', '.join(errors)}",
        )


# =====================================================
# CRUD
# =====================================================

def list_variants(db: Session, page: int = 1, page_size: int = 25, listing_id=None, is_active=None) -> Dict[str, Any]:
    query = db.query(ProductListingVariant)
    if listing_id is not None:
        query = query.filter(ProductListingVariant.product_listing_id == listing_id)
    if is_active is not None:
        query = query.filter(ProductListingVariant.is_active.is_(is_active))

    total = query.count()
    variants = (
        query.order_by(ProductListingVariant.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "data": [serialize_variant(v) for v in variants],
        "meta": {
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "pageCount": (total + page_size - 1) // page_size,
                "total": total,
            }
        },
    }


def create_variant(db: Session, data: Dict[str, Any]) -> ProductListingVariant:
    _raise_if_invalid(validate_variant_data(db, data))

    variant = ProductListingVariant(
        product_listing_id=data["product_listing"],
        sku=data["sku"].strip(),
        base_price=data["base_price"],
        discount_price=data.get("discount_price"),
        inventory=data.get("inventory") or 0,
        is_active=data.get("is_active", True),
    )
    variant.option_values = _load_option_values(db, data.get("option_values"))

    db.add(variant)
    db.commit()
    db.refresh(variant)

    logger.info("Variant %s (%s) created on listing %s", variant.id, variant.sku, variant.product_listing_id)
    return variant


def update_variant(db: Session, variant_id, data: Dict[str, Any]) -> ProductListingVariant:
    variant = get_variant(db, variant_id)
    _raise_if_invalid(validate_variant_data(db, data, variant_id=variant.id))

    for field in ("base_price", "discount_price", "inventory", "is_active"):
        if field in data:
            setattr(variant, field, data[field])
    if "sku" in data:
        variant.sku = data["sku"].strip()
    if data.get("product_listing") is not None:
        variant.product_listing_id = data["product_listing"]
    if data.get("option_values") is not None:
        variant.option_values = _load_option_values(db, data["option_values"])

    db.commit()
    db.refresh(variant)
    return variant


def delete_variant(db: Session, variant_id) -> None:
    variant = get_variant(db, variant_id)
    db.delete(variant)
    db.commit()
    logger.info("Variant %s deleted", variant_id)


# =====================================================
# SELECTION
# =====================================================

def find_by_options(db: Session, listing_id, value_ids) -> ProductListingVariant:
    """First variant of the listing that carries every requested option value."""
    if listing_id is None or not isinstance(value_ids, list) or not value_ids:
        raise HTTPException(
            status_code=400,
            detail="Product listing ID and option values array are required",
        )

    wanted = set(value_ids)
    variants = (
        db.query(ProductListingVariant)
        .filter(ProductListingVariant.product_listing_id == listing_id)
        .order_by(ProductListingVariant.created_at.asc())
        .all()
    )
    for variant in variants:
        if wanted.issubset({v.id for v in variant.option_values}):
            return variant

    raise HTTPException(status_code=404, detail="No variant found with the specified options")


def generate_sku(db: Session, listing_id, value_ids: Optional[List[UUID]] = None) -> str:
    listing = _get_listing(db, listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail="Product listing not found")

    base_sku = listing.product.sku or "PROD"

    if value_ids:
        by_id = {v.id: v for v in _load_option_values(db, value_ids)}
        suffix = "-".join(by_id[i].value for i in value_ids if i in by_id)
        if suffix:
            base_sku = f"{base_sku}-{suffix}"

    sku = base_sku
    counter = 1
    while sku_taken(db, sku):
        sku = f"{base_sku}-{counter}"
        counter += 1
    return sku


def check_availability(db: Session, variant_id, quantity: int = 1) -> Dict[str, Any]:
    variant = db.query(ProductListingVariant).filter(ProductListingVariant.id == variant_id).first()
    if not variant:
        return {"available": False, "reason": "Variant not found"}

    if not variant.is_active:
        return {"available": False, "reason": "Variant is inactive"}

    if variant.inventory < quantity:
        return {
            "available": False,
            "reason": "Insufficient inventory",
            "availableQuantity": variant.inventory,
            "requestedQuantity": quantity,
        }

    return {
        "available": True,
        "reason": "Available",
        "availableQuantity": variant.inventory,
        "requestedQuantity": quantity,
    }


# =====================================================
# PRICING & INVENTORY
# =====================================================

def bulk_update_prices(db: Session, updates: Any) -> Dict[str, Any]:
    if not isinstance(updates, list) or not updates:
        raise HTTPException(status_code=400, detail="Updates array is required")

    results = {"success": 0, "errors": 0, "details": []}

    for update in updates:
        if not isinstance(update, dict):
            results["errors"] += 1
            results["details"].append({"id": None, "error": "Each update must be an object"})
            continue

        raw_id = update.get("id")
        try:
            variant_id = UUID(str(raw_id))
        except ValueError:
            results["errors"] += 1
            results["details"].append({"id": raw_id, "error": "Invalid variant id"})
            continue

        variant = db.query(ProductListingVariant).filter(ProductListingVariant.id == variant_id).first()
        if not variant:
            results["errors"] += 1
            results["details"].append({"id": raw_id, "error": "Variant not found"})
            continue

        base_price = update.get("basePrice")
        discount_price = update.get("discountPrice")
        if not isinstance(base_price, int) or isinstance(base_price, bool) or base_price <= 0:
            results["errors"] += 1
            results["details"].append({"id": raw_id, "error": "Valid base price is required"})
            continue
        if discount_price is not None and (not isinstance(discount_price, int) or discount_price < 0):
            results["errors"] += 1
            results["details"].append({"id": raw_id, "error": "Discount price cannot be negative"})
            continue

        old_price = variant.base_price
        variant.base_price = base_price
        if "discountPrice" in update:
            variant.discount_price = discount_price

        results["success"] += 1
        results["details"].append({"id": raw_id, "oldPrice": old_price, "newPrice": base_price})

    db.commit()
    logger.info("Bulk price update: %d updated, %d failed", results["success"], results["errors"])
    return results


def pricing_summary(db: Session, listing_id) -> Dict[str, Any]:
    if _get_listing(db, listing_id) is None:
        raise HTTPException(status_code=404, detail="Product listing not found")

    prices = [
        row[0]
        for row in db.query(ProductListingVariant.base_price)
        .filter(ProductListingVariant.product_listing_id == listing_id)
        .all()
    ]
    if not prices:
        return {"minPrice": 0, "maxPrice": 0, "averagePrice": 0, "priceRange": 0, "variantCount": 0}

    return {
        "minPrice": min(prices),
        "maxPrice": max(prices),
        "averagePrice": round(sum(prices) / len(prices)),
        "priceRange": max(prices) - min(prices),
        "variantCount": len(prices),
    }


def update_inventory(db: Session, variant_id, quantity: int, operation: str = "set") -> ProductListingVariant:
    if operation not in INVENTORY_OPERATIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid operation. Must be one of: {', '.join(INVENTORY_OPERATIONS)}",
        )
    if quantity < 0:
        raise HTTPException(status_code=400, detail="Inventory must be a non-negative number")

    variant = get_variant(db, variant_id)
    old_inventory = variant.inventory

    if operation == "set":
        variant.inventory = quantity
    elif operation == "add":
        variant.inventory = old_inventory + quantity
    else:
        variant.inventory = max(0, old_inventory - quantity)

    db.commit()
    db.refresh(variant)

    logger.info(
        "Inventory change for variant %s: %d -> %d (%s)",
        variant.id,
        old_inventory,
        variant.inventory,
        operation,
    )
    return variant
