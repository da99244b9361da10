"""
Order lifecycle.

Status moves forward only::

    pending    -> confirmed, cancelled, refunded
    confirmed  -> processing, cancelled, refunded
    processing -> shipped, cancelled, refunded
    shipped    -> delivered

``delivered``, ``cancelled`` and ``refunded`` are terminal. Entering
``refunded`` additionally needs a payment that was confirmed or paid.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.dependencies import Caller
from app.models import (
    Address,
    CartStatus,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    User,
    utcnow,
)
from app.schemas import isoformat, str_id
from app.services.addresses import get_owned_address, serialize_address
from app.services.cart_calculation import calculate_totals
from app.services.carts import caller_cart, cart_lines

logger = logging.getLogger(__name__)

TRANSITIONS = {
    OrderStatus.pending: {OrderStatus.confirmed, OrderStatus.cancelled, OrderStatus.refunded},
    OrderStatus.confirmed: {OrderStatus.processing, OrderStatus.cancelled, OrderStatus.refunded},
    OrderStatus.processing: {OrderStatus.shipped, OrderStatus.cancelled, OrderStatus.refunded},
    OrderStatus.shipped: {OrderStatus.delivered},
    OrderStatus.delivered: set(),
    OrderStatus.cancelled: set(),
    OrderStatus.refunded: set(),
}

TERMINAL_STATUSES = {OrderStatus.delivered, OrderStatus.cancelled, OrderStatus.refunded}
REFUNDABLE_PAYMENT_STATUSES = {PaymentStatus.confirmed, PaymentStatus.paid}

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


# =====================================================
# HELPERS
# =====================================================

def parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status: {value}. Must be one of: {', '.join(s.value for s in OrderStatus)}",
        )


def parse_positive_int(value, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = 0
    if number < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name} value: {value}. Must be a positive number",
        )
    return number


def _parse_date(value: str, name: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}")


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in TRANSITIONS[OrderStatus(current)]


def generate_order_number() -> str:
    return f"ORD-{utcnow():%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


def serialize_payment(payment: Payment) -> Dict[str, Any]:
    return {
        "id": str(payment.id),
        "amount": payment.amount,
        "status": payment.status.value,
        "paymentMethod": payment.payment_method.code if payment.payment_method else None,
        "createdAt": isoformat(payment.created_at),
    }


def serialize_order(order: Order, detail: bool = True) -> Dict[str, Any]:
    data = {
        "id": str(order.id),
        "orderNumber": order.order_number,
        "status": order.status.value,
        "paymentStatus": order.payment_status.value,
        "user": str_id(order.user_id),
        "sessionId": order.session_id,
        "subtotal": order.subtotal,
        "tax": order.tax,
        "shipping": order.shipping,
        "discount": order.discount,
        "total": order.total,
        "currency": order.currency,
        "customerNotes": order.customer_notes,
        "createdAt": isoformat(order.created_at),
        "updatedAt": isoformat(order.updated_at),
        "items": [
            {
                "id": str(item.id),
                "product": str_id(item.product_id),
                "productListing": str_id(item.product_listing_id),
                "variant": str_id(item.variant_id),
                "name": item.name,
                "quantity": item.quantity,
                "unitPrice": item.unit_price,
                "total": item.total,
            }
            for item in order.items
        ],
    }
    if detail:
        data["shippingAddress"] = order.shipping_address
        data["payments"] = [serialize_payment(p) for p in order.payments]
    return data


def _scoped(db: Session, caller: Caller):
    query = db.query(Order)
    if caller.user:
        if caller.is_admin:
            return query
        return query.filter(Order.user_id == caller.user.id)
    if caller.session_id:
        return query.filter(Order.session_id == caller.session_id)
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Authentication or session ID required to access orders",
    )


def get_accessible_order(db: Session, order_id, caller: Caller) -> Order:
    if not caller.user and not caller.session_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Authentication or session ID required to access orders",
        )

    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    if caller.user:
        allowed = caller.is_admin or order.user_id == caller.user.id
    else:
        allowed = order.session_id is not None and order.session_id == caller.session_id

    if not allowed:
        raise HTTPException(status_code=403, detail="Access denied")
    return order


def status_counts(query) -> Dict[str, int]:
    rows = (
        query.with_entities(Order.status, func.count(Order.id))
        .group_by(Order.status)
        .all()
    )
    counts = {s.value: 0 for s in OrderStatus}
    for order_status, count in rows:
        counts[OrderStatus(order_status).value] = count
    return counts


# =====================================================
# QUERIES
# =====================================================

def list_orders(
    db: Session,
    caller: Caller,
    page="1",
    page_size=str(DEFAULT_PAGE_SIZE),
    order_status: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user_id=None,
) -> Dict[str, Any]:
    page = parse_positive_int(page, "page")
    page_size = min(parse_positive_int(page_size, "pageSize"), MAX_PAGE_SIZE)

    query = _scoped(db, caller)
    if user_id and caller.is_admin:
        query = query.filter(Order.user_id == user_id)
    if start_date:
        query = query.filter(Order.created_at >= _parse_date(start_date, "startDate"))
    if end_date:
        query = query.filter(Order.created_at <= _parse_date(end_date, "endDate"))

    counts = status_counts(query)

    if order_status:
        query = query.filter(Order.status == parse_status(order_status))

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    return {
        "data": [serialize_order(o, detail=False) for o in orders],
        "meta": {
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "pageCount": (total + page_size - 1) // page_size,
                "total": total,
            },
            "statusCounts": counts,
        },
    }


def get_stats(db: Session) -> Dict[str, Any]:
    query = db.query(Order)
    revenue = (
        db.query(func.coalesce(func.sum(Order.total), 0))
        .filter(Order.status.notin_([OrderStatus.cancelled, OrderStatus.refunded]))
        .scalar()
    )
    return {
        "totalOrders": query.count(),
        "statusCounts": status_counts(query),
        "totalRevenue": int(revenue or 0),
    }


def search_orders(db: Session, user: User, q: Optional[str], page="1", page_size=str(DEFAULT_PAGE_SIZE)) -> List[Order]:
    page = parse_positive_int(page, "page")
    page_size = min(parse_positive_int(page_size, "pageSize"), MAX_PAGE_SIZE)

    query = db.query(Order).filter(Order.user_id == user.id)
    if q:
        pattern = f"%{q}%"
        query = query.filter(or_(Order.order_number.ilike(pattern), Order.customer_notes.ilike(pattern)))

    return (
        query.order_by(Order.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )


# =====================================================
# CHECKOUT
# =====================================================

def create_order_from_cart(
    db: Session,
    caller: Caller,
    shipping_method: str = "standard",
    country: Optional[str] = None,
    customer_notes: Optional[str] = None,
    shipping_address_id=None,
) -> Order:
    if not caller.user and not caller.session_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Authentication or session ID required to place an order",
        )

    cart = caller_cart(db, caller)
    if not cart or not cart.items:
        raise HTTPException(status_code=400, detail="Cart is empty")

    shipping_address = None
    if shipping_address_id:
        address: Address = get_owned_address(db, shipping_address_id, caller)
        shipping_address = serialize_address(address)
        country = country or address.country

    totals = calculate_totals(cart_lines(cart), shipping_method=shipping_method, country=country, currency=cart.currency)

    order = Order(
        order_number=generate_order_number(),
        user_id=cart.user_id,
        session_id=cart.session_id,
        status=OrderStatus.pending,
        payment_status=PaymentStatus.pending,
        subtotal=totals["subtotal"],
        tax=totals["tax"],
        shipping=totals["shipping"],
        discount=totals["discount"],
        total=totals["total"],
        currency=cart.currency,
        customer_notes=customer_notes,
        shipping_address=shipping_address,
    )
    for item in cart.items:
        order.items.append(
            OrderItem(
                product_id=item.product_id,
                product_listing_id=item.product_listing_id,
                variant_id=item.variant_id,
                name=item.product_listing.title if item.product_listing else "Item",
                quantity=item.quantity,
                unit_price=item.price,
                total=item.total,
            )
        )

    cart.status = CartStatus.converted.value
    db.add(order)
    db.commit()
    db.refresh(order)

    logger.info("Order %s created from cart %s", order.order_number, cart.id)
    return order


# =====================================================
# STATUS TRANSITIONS
# =====================================================

def _refundable_payment(order: Order) -> Optional[Payment]:
    for payment in reversed(order.payments):
        if payment.status in REFUNDABLE_PAYMENT_STATUSES:
            return payment
    return None


def _apply_refund(order: Order) -> None:
    payment = _refundable_payment(order)
    if not payment:
        raise HTTPException(status_code=400, detail="Order has no confirmed payment to refund")
    payment.status = PaymentStatus.refunded
    order.payment_status = PaymentStatus.refunded


def _move(order: Order, new_status: OrderStatus) -> None:
    current = OrderStatus(order.status)
    if not can_transition(current, new_status):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status transition from {current.value} to {new_status.value}",
        )
    if new_status == OrderStatus.refunded:
        _apply_refund(order)
    order.status = new_status


def cancel_order(db: Session, order: Order) -> Order:
    if order.status in (OrderStatus.cancelled, OrderStatus.refunded):
        raise HTTPException(status_code=400, detail=f"Order is already {order.status.value}")

    _move(order, OrderStatus.cancelled)
    db.commit()
    db.refresh(order)

    logger.info("Order %s cancelled", order.order_number)
    return order


def refund_order(db: Session, order: Order) -> Order:
    if order.status == OrderStatus.refunded:
        raise HTTPException(status_code=400, detail="Order is already refunded")

    _move(order, OrderStatus.refunded)
    db.commit()
    db.refresh(order)

    logger.info("Order %s refunded", order.order_number)
    return order


def update_status(db: Session, order: Order, new_status: str) -> Order:
    target = parse_status(new_status)
    previous = order.status
    _move(order, target)
    db.commit()
    db.refresh(order)

    logger.info("Order %s moved from %s to %s", order.order_number, previous.value, target.value)
    return order


def record_payment(
    db: Session,
    order: Order,
    amount: int,
    payment_status: str,
    payment_method_code: Optional[str] = None,
) -> Payment:
    try:
        parsed_status = PaymentStatus(payment_status)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid payment status: {payment_status}")

    if amount is None or amount < 0:
        raise HTTPException(status_code=400, detail="Payment amount must be zero or more")

    method = None
    if payment_method_code:
        method = db.query(PaymentMethod).filter(PaymentMethod.code == payment_method_code).first()
        if not method:
            raise HTTPException(status_code=404, detail="Payment method not found")

    payment = Payment(amount=amount, status=parsed_status, payment_method=method)
    order.payments.append(payment)
    order.payment_status = parsed_status
    db.commit()
    db.refresh(payment)

    logger.info("Payment %s recorded for order %s (%s)", payment.id, order.order_number, parsed_status.value)
    return payment
