"""
Products and the listings that sell them.

A product is the stocked item; a listing is how it is offered. ``single``
listings are sold as-is, ``variant`` listings must be bought through one
of their variants.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models import Category, OptionGroup, Product, ProductListing
from app.schemas import isoformat, str_id

logger = logging.getLogger(__name__)

PRODUCT_STATUSES = ("draft", "published", "inactive")
LISTING_TYPES = ("single", "variant")


# =====================================================
# SERIALIZATION
# =====================================================

def serialize_product(product: Product) -> Dict[str, Any]:
    return {
        "id": str(product.id),
        "name": product.name,
        "sku": product.sku,
        "description": product.description,
        "price": product.price,
        "inventory": product.inventory,
        "weight": product.weight,
        "isActive": product.is_active,
        "status": product.status,
        "categories": [str(c.id) for c in product.categories],
        "createdAt": isoformat(product.created_at),
        "updatedAt": isoformat(product.updated_at),
    }


def serialize_listing(listing: ProductListing, detail: bool = True) -> Dict[str, Any]:
    data = {
        "id": str(listing.id),
        "title": listing.title,
        "description": listing.description,
        "type": listing.type,
        "product": str_id(listing.product_id),
        "basePrice": listing.base_price,
        "discountPrice": listing.discount_price,
        "isActive": listing.is_active,
        "optionGroups": [str(g.id) for g in listing.option_groups],
        "createdAt": isoformat(listing.created_at),
        "updatedAt": isoformat(listing.updated_at),
    }
    if detail:
        data["optionGroups"] = [
            {
                "id": str(g.id),
                "name": g.name,
                "displayName": g.display_name,
                "type": g.type,
                "optionValues": [
                    {"id": str(v.id), "value": v.value, "displayName": v.display_name}
                    for v in g.option_values
                ],
            }
            for g in listing.option_groups
        ]
        data["variants"] = [
            {
                "id": str(v.id),
                "sku": v.sku,
                "basePrice": v.base_price,
                "discountPrice": v.discount_price,
                "inventory": v.inventory,
                "isActive": v.is_active,
            }
            for v in listing.variants
        ]
    return data


# =====================================================
# PRODUCTS
# =====================================================

def get_product(db: Session, product_id) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def list_products(
    db: Session,
    page: int = 1,
    page_size: int = 25,
    q: Optional[str] = None,
    category_id=None,
    is_active: Optional[bool] = None,
) -> Dict[str, Any]:
    query = db.query(Product)
    if q:
        term = f"%{q.strip()}%"
        query = query.filter(or_(Product.name.ilike(term), Product.sku.ilike(term)))
    if category_id is not None:
        query = query.filter(Product.categories.any(Category.id == category_id))
    if is_active is not None:
        query = query.filter(Product.is_active.is_(is_active))

    total = query.count()
    products = (
        query.order_by(Product.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "data": [serialize_product(p) for p in products],
        "meta": {
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "pageCount": (total + page_size - 1) // page_size,
                "total": total,
            }
        },
    }


def create_product(db: Session, data: Dict[str, Any]) -> Product:
    name = (data.get("name") or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Product name is required")

    price = data.get("price") or 0
    if price < 0:
        raise HTTPException(status_code=400, detail="Price cannot be negative")
    if (data.get("inventory") or 0) < 0:
        raise HTTPException(status_code=400, detail="Inventory cannot be negative")

    product_status = data.get("status") or "published"
    if product_status not in PRODUCT_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status. Must be one of: {', '.join(PRODUCT_STATUSES)}",
        )

    sku = data.get("sku")
    if sku and db.query(Product).filter(Product.sku == sku).first():
        raise HTTPException(status_code=400, detail=f"Product with SKU '{sku}' already exists")

    product = Product(
        name=name,
        sku=sku,
        description=data.get("description"),
        price=price,
        inventory=data.get("inventory") or 0,
        weight=data.get("weight") if data.get("weight") is not None else 0.5,
        is_active=data.get("is_active", True),
        status=product_status,
    )
    if data.get("categories"):
        categories = db.query(Category).filter(Category.id.in_(data["categories"])).all()
        if len(categories) != len(set(data["categories"])):
            raise HTTPException(status_code=400, detail="One or more categories not found")
        product.categories = categories

    db.add(product)
    db.commit()
    db.refresh(product)

    logger.info("Product %s (%s) created", product.id, product.sku)
    return product


# =====================================================
# LISTINGS
# =====================================================

def get_listing(db: Session, listing_id) -> ProductListing:
    listing = db.query(ProductListing).filter(ProductListing.id == listing_id).first()
    if not listing:
        raise HTTPException(status_code=404, detail="Product listing not found")
    return listing


def list_listings(db: Session, page: int = 1, page_size: int = 25, product_id=None) -> Dict[str, Any]:
    query = db.query(ProductListing)
    if product_id is not None:
        query = query.filter(ProductListing.product_id == product_id)

    total = query.count()
    listings = (
        query.order_by(ProductListing.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "data": [serialize_listing(l, detail=False) for l in listings],
        "meta": {
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "pageCount": (total + page_size - 1) // page_size,
                "total": total,
            }
        },
    }


def _load_option_groups(db: Session, group_ids) -> List[OptionGroup]:
    if not group_ids:
        return []
    groups = db.query(OptionGroup).filter(OptionGroup.id.in_(group_ids)).all()
    if len(groups) != len(set(group_ids)):
        raise HTTPException(status_code=400, detail="One or more option groups not found")
    return groups


def _check_listing_fields(data: Dict[str, Any]) -> None:
    if "title" in data and not (data.get("title") or "").strip():
        raise HTTPException(status_code=400, detail="Listing title is required")
    if "base_price" in data and (data["base_price"] is None or data["base_price"] <= 0):
        raise HTTPException(status_code=400, detail="Valid base price is required")
    if data.get("discount_price") is not None and data["discount_price"] < 0:
        raise HTTPException(status_code=400, detail="Discount price cannot be negative")
    if data.get("type") is not None and data["type"] not in LISTING_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid listing type. Must be one of: {', '.join(LISTING_TYPES)}",
        )


def create_listing(db: Session, data: Dict[str, Any]) -> ProductListing:
    if not data.get("product"):
        raise HTTPException(status_code=400, detail="Product is required")
    if not (data.get("title") or "").strip():
        raise HTTPException(status_code=400, detail="Listing title is required")
    if data.get("base_price") is None:
        raise HTTPException(status_code=400, detail="Valid base price is required")
    _check_listing_fields(data)

    product = db.query(Product).filter(Product.id == data["product"]).first()
    if not product:
        raise HTTPException(status_code=400, detail="Product not found")

    listing = ProductListing(
        product_id=product.id,
        title=data["title"].strip(),
        description=data.get("description"),
        type=data.get("type") or "single",
        base_price=data["base_price"],
        discount_price=data.get("discount_price"),
        is_active=data.get("is_active", True),
    )
    listing.option_groups = _load_option_groups(db, data.get("option_groups"))

    db.add(listing)
    db.commit()
    db.refresh(listing)

    logger.info("Product listing %s created for product %s", listing.id, product.id)
    return listing


def update_listing(db: Session, listing_id, data: Dict[str, Any]) -> ProductListing:
    listing = get_listing(db, listing_id)
    _check_listing_fields(data)

    for field in ("title", "description", "type", "base_price", "discount_price", "is_active"):
        if field in data:
            setattr(listing, field, data[field])
    if data.get("option_groups") is not None:
        listing.option_groups = _load_option_groups(db, data["option_groups"])

    db.commit()
    db.refresh(listing)
    return listing


def delete_listing(db: Session, listing_id) -> None:
    listing = get_listing(db, listing_id)
    db.delete(listing)
    db.commit()
    logger.info("Product listing %s deleted", listing_id)
