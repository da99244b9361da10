from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import Caller, UserType, get_current_user, is_public, require_admin
from app.models import User
from app.schemas import CamelModel
from app.services import orders as order_service
from app.services.orders import serialize_order, serialize_payment

router = APIRouter(prefix="/orders", tags=["orders"])


# =====================================================
# Pydantic Schemas
# =====================================================

class CheckoutPayload(CamelModel):
    shipping_method: str = "standard"
    country: Optional[str] = None
    customer_notes: Optional[str] = None
    shipping_address_id: Optional[UUID] = None


class StatusUpdatePayload(CamelModel):
    status: str


class PaymentPayload(CamelModel):
    amount: int
    status: str = "pending"
    payment_method: Optional[str] = None


# =====================================================
# OWNER: CHECKOUT
# =====================================================
@router.post("", status_code=status.HTTP_201_CREATED)
def create_order(
    payload: CheckoutPayload,
    db: Session = Depends(get_db),
    caller: Caller = Depends(is_public),
):
    """Turn the caller's active cart into a pending order."""
    order = order_service.create_order_from_cart(
        db,
        caller,
        shipping_method=payload.shipping_method,
        country=payload.country,
        customer_notes=payload.customer_notes,
        shipping_address_id=payload.shipping_address_id,
    )
    return {"data": serialize_order(order)}


# =====================================================
# OWNER: LIST ORDERS
# =====================================================
@router.get("")
def list_orders(
    page: str = Query("1"),
    page_size: str = Query(str(order_service.DEFAULT_PAGE_SIZE), alias="pageSize"),
    order_status: Optional[str] = Query(None, alias="status"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    user: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    caller: Caller = Depends(is_public),
):
    return order_service.list_orders(
        db,
        caller,
        page=page,
        page_size=page_size,
        order_status=order_status,
        start_date=start_date,
        end_date=end_date,
        user_id=user,
    )


@router.get("/byStatus/{order_status}")
def list_orders_by_status(
    order_status: str,
    page: str = Query("1"),
    page_size: str = Query(str(order_service.DEFAULT_PAGE_SIZE), alias="pageSize"),
    db: Session = Depends(get_db),
    caller: Caller = Depends(is_public),
):
    order_service.parse_status(order_status)
    return order_service.list_orders(
        db,
        caller,
        page=page,
        page_size=page_size,
        order_status=order_status,
    )


# =====================================================
# ADMIN: STATS
# =====================================================
@router.get("/stats")
def get_order_stats(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return {"data": order_service.get_stats(db)}


# =====================================================
# USER: SEARCH
# =====================================================
@router.get("/search")
def search_orders(
    q: Optional[str] = Query(None),
    page: str = Query("1"),
    page_size: str = Query(str(order_service.DEFAULT_PAGE_SIZE), alias="pageSize"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    orders = order_service.search_orders(db, user, q, page=page, page_size=page_size)
    return {"data": [serialize_order(o, detail=False) for o in orders]}


# =====================================================
# OWNER: SINGLE ORDER
# =====================================================
@router.get("/{order_id}")
def get_order(
    order_id: UUID,
    db: Session = Depends(get_db),
    caller: Caller = Depends(is_public),
):
    order = order_service.get_accessible_order(db, order_id, caller)
    return {"data": serialize_order(order)}


@router.post("/{order_id}/cancel")
def cancel_order(
    order_id: UUID,
    db: Session = Depends(get_db),
    caller: Caller = Depends(is_public),
):
    order = order_service.get_accessible_order(db, order_id, caller)
    order = order_service.cancel_order(db, order)
    return {"message": "Order cancelled", "data": serialize_order(order)}


@router.post("/{order_id}/refund")
def refund_order(
    order_id: UUID,
    db: Session = Depends(get_db),
    caller: Caller = Depends(is_public),
):
    order = order_service.get_accessible_order(db, order_id, caller)
    order = order_service.refund_order(db, order)
    return {"message": "Order refunded", "data": serialize_order(order)}


# =====================================================
# ADMIN: STATUS & PAYMENTS
# =====================================================
@router.put("/{order_id}/status")
def update_order_status(
    order_id: UUID,
    payload: StatusUpdatePayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    order = order_service.get_accessible_order(db, order_id, Caller(user_type=UserType.AUTHENTICATED, user=admin))
    order = order_service.update_status(db, order, payload.status)
    return {"data": serialize_order(order)}


@router.post("/{order_id}/payments", status_code=status.HTTP_201_CREATED)
def record_order_payment(
    order_id: UUID,
    payload: PaymentPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    order = order_service.get_accessible_order(db, order_id, Caller(user_type=UserType.AUTHENTICATED, user=admin))
    payment = order_service.record_payment(
        db,
        order,
        payload.amount,
        payload.status,
        payload.payment_method,
    )
    return {"data": serialize_payment(payment)}
