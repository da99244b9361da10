from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_admin
from app.models import User
from app.schemas import CamelModel
from app.services import options as option_service
from app.services.options import serialize_option_value

router = APIRouter(prefix="/option-values", tags=["option-values"])


# =====================================================
# Pydantic Schemas
# =====================================================

class OptionValuePayload(CamelModel):
    value: Optional[str] = None
    display_name: Optional[str] = None
    option_group: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


# =====================================================
# PUBLIC: LIST
# =====================================================
@router.get("")
def list_option_values(
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100, alias="pageSize"),
    option_group: Optional[UUID] = Query(None, alias="optionGroup"),
    db: Session = Depends(get_db),
):
    return option_service.list_option_values(db, page, page_size, option_group)


@router.get("/active")
def list_active_option_values(db: Session = Depends(get_db)):
    values = option_service.list_active_option_values(db)
    return {"data": [serialize_option_value(v) for v in values]}


@router.get("/option-group/{group_id}")
def list_values_for_group(group_id: UUID, db: Session = Depends(get_db)):
    values = option_service.list_values_for_group(db, group_id)
    return {"data": [serialize_option_value(v) for v in values]}


@router.get("/product-listing/{listing_id}")
def list_values_for_listing(listing_id: UUID, db: Session = Depends(get_db)):
    values = option_service.list_values_for_listing(db, listing_id)
    return {"data": [serialize_option_value(v) for v in values]}


# =====================================================
# ADMIN: CREATE
# =====================================================
@router.post("", status_code=status.HTTP_201_CREATED)
def create_option_value(
    payload: OptionValuePayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    value = option_service.create_option_value(db, payload.model_dump(exclude_unset=True))
    return {"data": serialize_option_value(value)}


@router.post("/bulk-create")
def bulk_create_option_values(
    data: Any = Body(None, embed=True),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return option_service.bulk_create_option_values(db, data)


# =====================================================
# PUBLIC: SINGLE VALUE
# =====================================================
@router.get("/{value_id}")
def get_option_value(value_id: UUID, db: Session = Depends(get_db)):
    return {"data": serialize_option_value(option_service.get_option_value(db, value_id))}


# =====================================================
# ADMIN: UPDATE / DELETE
# =====================================================
@router.put("/{value_id}")
def update_option_value(
    value_id: UUID,
    payload: OptionValuePayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    value = option_service.update_option_value(db, value_id, payload.model_dump(exclude_unset=True))
    return {"data": serialize_option_value(value)}


@router.delete("/{value_id}")
def delete_option_value(
    value_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    option_service.delete_option_value(db, value_id)
    return {"message": "Option value deleted successfully"}
