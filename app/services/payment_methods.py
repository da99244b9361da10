"""
Manual payment methods (cash, bank transfer, check, money order).
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.models import PaymentMethod, PaymentMethodCode
from app.schemas import isoformat

logger = logging.getLogger(__name__)

PAYMENT_METHOD_CODES = tuple(c.value for c in PaymentMethodCode)
PAYMENT_TYPES = ("manual", "automated")

MAX_NAME_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 1000
MAX_INSTRUCTIONS_LENGTH = 2000

DEFAULT_PAYMENT_METHODS = [
    {
        "name": "Cash",
        "code": "cash",
        "description": "Payment in cash upon delivery or pickup",
        "instructions": "Please have exact change ready for cash payments.",
    },
    {
        "name": "Bank Transfer",
        "code": "bank_transfer",
        "description": "Direct bank transfer to our account",
        "instructions": "Transfer to Account: 1234567890, Bank: Example Bank, Reference: Your Order Number",
    },
    {
        "name": "Check",
        "code": "check",
        "description": "Payment by personal or business check",
        "instructions": "Make check payable to: Your Company Name. Include order number in memo.",
    },
    {
        "name": "Money Order",
        "code": "money_order",
        "description": "Payment by money order or cashier's check",
        "instructions": "Make money order payable to: Your Company Name. Include order number in memo.",
    },
]


def serialize_payment_method(method: PaymentMethod) -> Dict[str, Any]:
    return {
        "id": str(method.id),
        "name": method.name,
        "code": method.code,
        "description": method.description,
        "instructions": method.instructions,
        "paymentType": method.payment_type,
        "isActive": method.is_active,
        "createdAt": isoformat(method.created_at),
        "updatedAt": isoformat(method.updated_at),
    }


# =====================================================
# VALIDATION
# =====================================================

def code_is_unique(db: Session, code: str, exclude_id=None) -> bool:
    query = db.query(PaymentMethod).filter(PaymentMethod.code == code)
    if exclude_id is not None:
        query = query.filter(PaymentMethod.id != exclude_id)
    return query.first() is None


def validate_payment_method_data(
    db: Session,
    data: Dict[str, Any],
    partial: bool = False,
    exclude_id=None,
) -> List[str]:
    """Full payloads need name, code and description; partial ones check what they carry."""
    errors = []

    name = data.get("name")
    code = data.get("code")
    description = data.get("description")
    instructions = data.get("instructions")
    payment_type = data.get("payment_type")

    if (not partial or "name" in data) and not (name or "").strip():
        errors.append("Name is required")
    if (not partial or "code" in data) and not code:
        errors.append("Code is required")
    if (not partial or "description" in data) and not (description or "").strip():
        errors.append("Description is required")

    if name and len(name) > MAX_NAME_LENGTH:
        errors.append(f"Name must be {MAX_NAME_LENGTH} characters or less")
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        errors.append(f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less")
    if instructions and len(instructions) > MAX_INSTRUCTIONS_LENGTH:
        errors.append(f"Instructions must be {MAX_INSTRUCTIONS_LENGTH} characters or less")

    if code and code not in PAYMENT_METHOD_CODES:
        errors.append("Invalid payment method code")
    if payment_type is not None and payment_type not in PAYMENT_TYPES:
        errors.append("Invalid payment type")

    if code and code in PAYMENT_METHOD_CODES and not code_is_unique(db, code, exclude_id):
        errors.append("Payment method code already exists")

    return errors


def _raise_if_invalid(errors: List[str]) -> None:
    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Validation failed: {', '.join(errors)}",
        )


# =====================================================
# ADMIN CRUD
# =====================================================

def get_payment_method(db: Session, method_id) -> PaymentMethod:
    method = db.query(PaymentMethod).filter(PaymentMethod.id == method_id).first()
    if not method:
        raise HTTPException(status_code=404, detail="Payment method not found")
    return method


def list_payment_methods(db: Session, is_active: Optional[bool] = None) -> List[PaymentMethod]:
    query = db.query(PaymentMethod)
    if is_active is not None:
        query = query.filter(PaymentMethod.is_active.is_(is_active))
    return query.order_by(PaymentMethod.name.asc()).all()


def create_payment_method(db: Session, data: Dict[str, Any]) -> PaymentMethod:
    _raise_if_invalid(validate_payment_method_data(db, data))

    method = PaymentMethod(
        name=data["name"].strip(),
        code=data["code"],
        description=data["description"].strip(),
        instructions=data.get("instructions"),
        payment_type=data.get("payment_type") or "manual",
        is_active=data.get("is_active", True),
    )
    db.add(method)
    db.commit()
    db.refresh(method)

    logger.info("Payment method %s (%s) created", method.id, method.code)
    return method


def update_payment_method(db: Session, method_id, data: Dict[str, Any]) -> PaymentMethod:
    method = get_payment_method(db, method_id)
    _raise_if_invalid(validate_payment_method_data(db, data, partial=True, exclude_id=method.id))

    for field in ("name", "code", "description", "instructions", "payment_type", "is_active"):
        if field in data and data[field] is not None:
            setattr(method, field, data[field])

    db.commit()
    db.refresh(method)
    return method


def delete_payment_method(db: Session, method_id) -> None:
    method = get_payment_method(db, method_id)
    db.delete(method)
    db.commit()
    logger.info("Payment method %s deleted", method_id)


# =====================================================
# BASIC (MANUAL) METHODS
# =====================================================

def get_active_by_code(db: Session, code: str) -> PaymentMethod:
    method = (
        db.query(PaymentMethod)
        .filter(PaymentMethod.code == code, PaymentMethod.is_active.is_(True))
        .first()
    )
    if not method:
        raise HTTPException(status_code=404, detail="Payment method not found")
    return method


def set_active(db: Session, method_id, active: bool) -> PaymentMethod:
    method = get_payment_method(db, method_id)
    method.is_active = active
    db.commit()
    db.refresh(method)

    logger.info("Payment method %s %s", method.code, "activated" if active else "deactivated")
    return method


def get_stats(db: Session) -> Dict[str, int]:
    total = db.query(PaymentMethod).count()
    active = db.query(PaymentMethod).filter(PaymentMethod.is_active.is_(True)).count()
    return {"total": total, "active": active, "inactive": total - active}


def initialize_defaults(db: Session) -> List[PaymentMethod]:
    """Seed the four manual methods, skipping codes that already exist."""
    created = []
    for entry in DEFAULT_PAYMENT_METHODS:
        if not code_is_unique(db, entry["code"]):
            continue
        method = PaymentMethod(payment_type="manual", is_active=True, **entry)
        db.add(method)
        created.append(method)

    db.commit()
    for method in created:
        db.refresh(method)

    logger.info("Initialized %d default payment methods", len(created))
    return created
