from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_admin
from app.models import User
from app.schemas import CamelModel
from app.services import payment_methods as payment_method_service
from app.services.payment_methods import serialize_payment_method

router = APIRouter(prefix="/payment-methods", tags=["payment-methods"])


# =====================================================
# Pydantic Schemas
# =====================================================

class PaymentMethodPayload(CamelModel):
    name: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None
    instructions: Optional[str] = None
    payment_type: Optional[str] = None
    is_active: Optional[bool] = None


# =====================================================
# PUBLIC: BASIC PAYMENT METHODS
# =====================================================
@router.get("/basic")
def list_basic_payment_methods(db: Session = Depends(get_db)):
    methods = payment_method_service.list_payment_methods(db, is_active=True)
    return {"data": [serialize_payment_method(m) for m in methods]}


@router.get("/basic/stats")
def get_payment_method_stats(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return {"data": payment_method_service.get_stats(db)}


@router.post("/basic/initialize")
def initialize_payment_methods(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    created = payment_method_service.initialize_defaults(db)
    return {
        "data": [serialize_payment_method(m) for m in created],
        "message": f"Initialized {len(created)} payment methods",
    }


@router.get("/basic/{code}")
def get_basic_payment_method(code: str, db: Session = Depends(get_db)):
    method = payment_method_service.get_active_by_code(db, code)
    return {"data": serialize_payment_method(method)}


@router.post("/basic/{method_id}/activate")
def activate_payment_method(
    method_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    method = payment_method_service.set_active(db, method_id, True)
    return {"data": serialize_payment_method(method)}


@router.post("/basic/{method_id}/deactivate")
def deactivate_payment_method(
    method_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    method = payment_method_service.set_active(db, method_id, False)
    return {"data": serialize_payment_method(method)}


# =====================================================
# ADMIN: CRUD
# =====================================================
@router.get("")
def list_payment_methods(
    is_active: Optional[bool] = Query(None, alias="isActive"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    methods = payment_method_service.list_payment_methods(db, is_active)
    return {"data": [serialize_payment_method(m) for m in methods]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_payment_method(
    payload: PaymentMethodPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    method = payment_method_service.create_payment_method(db, payload.model_dump(exclude_unset=True))
    return {"data": serialize_payment_method(method)}


@router.get("/{method_id}")
def get_payment_method(
    method_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return {"data": serialize_payment_method(payment_method_service.get_payment_method(db, method_id))}


@router.put("/{method_id}")
def update_payment_method(
    method_id: UUID,
    payload: PaymentMethodPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    method = payment_method_service.update_payment_method(db, method_id, payload.model_dump(exclude_unset=True))
    return {"data": serialize_payment_method(method)}


@router.delete("/{method_id}")
def delete_payment_method(
    method_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    payment_method_service.delete_payment_method(db, method_id)
    return {"message": "Payment method deleted successfully"}
