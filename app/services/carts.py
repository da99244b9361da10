"""
Cart persistence.

A cart belongs to exactly one owner: a user or a guest session. Guest
carts are merged into the user's cart when the guest signs in.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.dependencies import Caller
from app.models import (
    Cart,
    CartItem,
    CartStatus,
    Product,
    ProductListing,
    ProductListingVariant,
    User,
    utcnow,
)
from app.schemas import isoformat, str_id
from app.services.cart_calculation import calculate_totals, validate_calculation

logger = logging.getLogger(__name__)


# =====================================================
# HELPERS
# =====================================================

def unit_price(listing: ProductListing, variant: Optional[ProductListingVariant] = None) -> int:
    source = variant or listing
    if source.discount_price is not None:
        return source.discount_price
    return source.base_price


def _line_key(item: CartItem):
    return (item.product_id, item.product_listing_id, item.variant_id)


def cart_lines(cart: Cart):
    return [
        {
            "total": item.total,
            "quantity": item.quantity,
            "weight": item.product.weight if item.product else None,
        }
        for item in cart.items
    ]


def serialize_cart_item(item: CartItem) -> Dict[str, Any]:
    return {
        "id": str(item.id),
        "product": str_id(item.product_id),
        "productListing": str_id(item.product_listing_id),
        "variant": str_id(item.variant_id),
        "name": item.product_listing.title if item.product_listing else None,
        "quantity": item.quantity,
        "price": item.price,
        "total": item.total,
    }


def serialize_cart(cart: Optional[Cart]) -> Dict[str, Any]:
    if cart is None:
        return {
            "id": None,
            "items": [],
            "totals": calculate_totals([]),
        }

    return {
        "id": str(cart.id),
        "user": str_id(cart.user_id),
        "sessionId": cart.session_id,
        "status": cart.status,
        "currency": cart.currency,
        "expiresAt": isoformat(cart.expires_at),
        "items": [serialize_cart_item(item) for item in cart.items],
        "totals": calculate_totals(cart_lines(cart), currency=cart.currency),
    }


def find_active_cart(db: Session, user: Optional[User] = None, session_id: Optional[str] = None) -> Optional[Cart]:
    query = db.query(Cart).filter(
        Cart.status == CartStatus.active.value,
        or_(Cart.expires_at.is_(None), Cart.expires_at > utcnow()),
    )
    if user is not None:
        query = query.filter(Cart.user_id == user.id)
    else:
        query = query.filter(Cart.session_id == session_id, Cart.user_id.is_(None))
    return query.order_by(Cart.created_at.desc()).first()


def caller_cart(db: Session, caller: Caller) -> Optional[Cart]:
    return find_active_cart(db, user=caller.user, session_id=caller.session_id)


def get_or_create_cart(db: Session, caller: Caller) -> Cart:
    cart = caller_cart(db, caller)
    if cart:
        return cart

    cart = Cart(
        user_id=caller.user.id if caller.user else None,
        session_id=None if caller.user else caller.session_id,
    )
    db.add(cart)
    db.flush()
    logger.info("Created cart %s for %s", cart.id, caller.user.id if caller.user else f"session {caller.session_id}")
    return cart


def _check_quantity(quantity) -> int:
    if quantity is None or isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Quantity must be a positive integer",
        )
    return quantity


def _available_inventory(product: Product, variant: Optional[ProductListingVariant]) -> int:
    if variant is not None:
        return variant.inventory or 0
    return product.inventory or 0


def get_caller_item(db: Session, caller: Caller, item_id) -> CartItem:
    cart = caller_cart(db, caller)
    item = None
    if cart:
        item = (
            db.query(CartItem)
            .filter(CartItem.id == item_id, CartItem.cart_id == cart.id)
            .first()
        )
    if not item:
        # Items in other carts are reported as missing
        raise HTTPException(status_code=404, detail="Cart item not found")
    return item


# =====================================================
# OPERATIONS
# =====================================================

def add_item(
    db: Session,
    caller: Caller,
    product_id,
    product_listing_id,
    variant_id=None,
    quantity=1,
) -> Cart:
    if not product_id or not product_listing_id:
        raise HTTPException(status_code=400, detail="productId and productListingId are required")
    quantity = _check_quantity(quantity)

    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    listing = db.query(ProductListing).filter(ProductListing.id == product_listing_id).first()
    if not listing:
        raise HTTPException(status_code=404, detail="Product listing not found")

    if not listing.is_active or not product.is_active:
        raise HTTPException(status_code=400, detail="Product is not available")

    if listing.product_id != product.id:
        raise HTTPException(status_code=400, detail="Product listing does not belong to this product")

    variant = None
    if variant_id:
        variant = db.query(ProductListingVariant).filter(ProductListingVariant.id == variant_id).first()
        if not variant:
            raise HTTPException(status_code=404, detail="Product variant not found")
        if variant.product_listing_id != listing.id:
            raise HTTPException(status_code=400, detail="Variant does not belong to this product listing")
        if not variant.is_active:
            raise HTTPException(status_code=400, detail="Product variant is not available")
    elif listing.type == "variant":
        raise HTTPException(status_code=400, detail="A variant must be selected for this product")

    cart = get_or_create_cart(db, caller)

    existing = next(
        (i for i in cart.items if _line_key(i) == (product.id, listing.id, variant.id if variant else None)),
        None,
    )
    requested = quantity + (existing.quantity if existing else 0)
    available = _available_inventory(product, variant)
    if requested > available:
        raise HTTPException(
            status_code=400,
            detail=f"Insufficient inventory. Available: {available}",
        )

    if existing:
        existing.quantity = requested
        existing.total = existing.price * existing.quantity
    else:
        price = unit_price(listing, variant)
        cart.items.append(
            CartItem(
                product_id=product.id,
                product_listing_id=listing.id,
                variant_id=variant.id if variant else None,
                quantity=quantity,
                price=price,
                total=price * quantity,
            )
        )

    db.commit()
    db.refresh(cart)
    return cart


def update_item(db: Session, caller: Caller, item_id, quantity) -> Cart:
    quantity = _check_quantity(quantity)
    item = get_caller_item(db, caller, item_id)

    available = _available_inventory(item.product, item.variant)
    if quantity > available:
        raise HTTPException(status_code=400, detail=f"Insufficient inventory. Available: {available}")

    item.quantity = quantity
    item.total = item.price * quantity
    cart = item.cart
    db.commit()
    db.refresh(cart)
    return cart


def remove_item(db: Session, caller: Caller, item_id) -> Cart:
    item = get_caller_item(db, caller, item_id)
    cart = item.cart
    cart.items.remove(item)
    db.commit()
    db.refresh(cart)
    return cart


def clear_cart(db: Session, caller: Caller) -> Optional[Cart]:
    cart = caller_cart(db, caller)
    if not cart:
        return None
    cart.items.clear()
    db.commit()
    db.refresh(cart)
    return cart


def delete_cart(db: Session, cart_id) -> None:
    cart = db.query(Cart).filter(Cart.id == cart_id).first()
    if not cart:
        raise HTTPException(status_code=404, detail="Cart not found")
    db.delete(cart)
    db.commit()
    logger.info("Cart %s deleted", cart_id)


def calculate(db: Session, caller: Caller, shipping_method: str = "standard", country: str = None) -> Dict[str, Any]:
    cart = caller_cart(db, caller)
    lines = cart_lines(cart) if cart else []
    totals = calculate_totals(
        lines,
        shipping_method=shipping_method or "standard",
        country=country,
        currency=cart.currency if cart else "USD",
    )

    errors = validate_calculation(totals)
    if errors:
        logger.error("Cart calculation failed validation: %s", errors)
        raise HTTPException(status_code=500, detail="Cart calculation failed")
    return totals


def migrate_guest_cart(db: Session, user: User, session_id: str) -> Cart:
    """Move a guest cart to ``user``, merging with the user's cart if any."""
    if not session_id:
        raise HTTPException(status_code=400, detail="sessionId is required")

    guest_cart = find_active_cart(db, session_id=session_id)
    if not guest_cart:
        raise HTTPException(status_code=404, detail="Guest cart not found")

    user_cart = find_active_cart(db, user=user)

    if not user_cart:
        guest_cart.user_id = user.id
        guest_cart.session_id = None
        db.commit()
        db.refresh(guest_cart)
        logger.info("Guest cart %s reassigned to user %s", guest_cart.id, user.id)
        return guest_cart

    lines = {_line_key(item): item for item in user_cart.items}
    for item in guest_cart.items:
        match = lines.get(_line_key(item))
        if match:
            match.quantity += item.quantity
            match.total = match.price * match.quantity
        else:
            user_cart.items.append(
                CartItem(
                    product_id=item.product_id,
                    product_listing_id=item.product_listing_id,
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                    price=item.price,
                    total=item.total,
                )
            )

    merged_count = len(guest_cart.items)
    db.delete(guest_cart)
    db.commit()
    db.refresh(user_cart)

    logger.info(
        "Merged %s guest cart lines from session %s into cart %s",
        merged_count,
        session_id,
        user_cart.id,
    )
    return user_cart
