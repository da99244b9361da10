from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import Caller, get_current_user, require_admin, require_cart_owner
from app.models import User
from app.schemas import CamelModel
from app.services import carts as cart_service
from app.services.carts import serialize_cart

router = APIRouter(prefix="/carts", tags=["cart"])


# =====================================================
# Pydantic Schemas
# =====================================================

class AddToCartPayload(CamelModel):
    product_id: Optional[UUID] = None
    product_listing_id: Optional[UUID] = None
    variant_id: Optional[UUID] = None
    quantity: Any = 1


class UpdateCartItemPayload(CamelModel):
    quantity: Any = None


class CalculatePayload(CamelModel):
    shipping_method: Optional[str] = "standard"
    country: Optional[str] = None


class MigrateCartPayload(CamelModel):
    session_id: Optional[str] = None


# =====================================================
# OWNER: GET CURRENT CART
# =====================================================
@router.get("/current")
def get_current_cart(
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_cart_owner),
):
    return {"data": serialize_cart(cart_service.caller_cart(db, caller))}


# =====================================================
# OWNER: CART ITEMS
# =====================================================
@router.post("/items", status_code=status.HTTP_201_CREATED)
def add_to_cart(
    payload: AddToCartPayload,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_cart_owner),
):
    cart = cart_service.add_item(
        db,
        caller,
        payload.product_id,
        payload.product_listing_id,
        payload.variant_id,
        payload.quantity,
    )
    return {"data": serialize_cart(cart)}


@router.put("/items/{item_id}")
def update_cart_item(
    item_id: UUID,
    payload: UpdateCartItemPayload,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_cart_owner),
):
    cart = cart_service.update_item(db, caller, item_id, payload.quantity)
    return {"data": serialize_cart(cart)}


@router.delete("/items/{item_id}")
def remove_cart_item(
    item_id: UUID,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_cart_owner),
):
    cart = cart_service.remove_item(db, caller, item_id)
    return {"message": "Item removed from cart", "data": serialize_cart(cart)}


# =====================================================
# OWNER: CLEAR / CALCULATE
# =====================================================
@router.post("/clear")
def clear_cart(
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_cart_owner),
):
    cart = cart_service.clear_cart(db, caller)
    return {"message": "Cart cleared", "data": serialize_cart(cart)}


@router.post("/calculate")
def calculate_cart(
    payload: CalculatePayload,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_cart_owner),
):
    return {"data": cart_service.calculate(db, caller, payload.shipping_method, payload.country)}


# =====================================================
# USER: MIGRATE GUEST CART AFTER LOGIN
# =====================================================
@router.post("/migrate")
def migrate_cart(
    payload: MigrateCartPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    cart = cart_service.migrate_guest_cart(db, user, payload.session_id)
    return {"message": "Cart migrated successfully", "data": serialize_cart(cart)}


# =====================================================
# ADMIN: DELETE CART
# =====================================================
@router.delete("/{cart_id}")
def delete_cart(
    cart_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    cart_service.delete_cart(db, cart_id)
    return {"message": "Cart deleted"}
