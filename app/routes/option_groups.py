from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_admin
from app.models import User
from app.schemas import CamelModel
from app.services import options as option_service
from app.services.options import serialize_option_group

router = APIRouter(prefix="/option-groups", tags=["option-groups"])


# =====================================================
# Pydantic Schemas
# =====================================================

class OptionGroupPayload(CamelModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    type: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None
    product_listings: Optional[List[UUID]] = None


class OptionGroupWithValuesPayload(OptionGroupPayload):
    default_values: List[Dict[str, Any]] = []


# =====================================================
# PUBLIC: LIST
# =====================================================
@router.get("")
def list_option_groups(
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100, alias="pageSize"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    db: Session = Depends(get_db),
):
    return option_service.list_option_groups(db, page, page_size, is_active)


@router.get("/active")
def list_active_option_groups(db: Session = Depends(get_db)):
    groups = option_service.list_active_option_groups(db)
    return {"data": [serialize_option_group(g) for g in groups]}


@router.get("/product-listing/{listing_id}")
def list_option_groups_for_listing(listing_id: UUID, db: Session = Depends(get_db)):
    groups = option_service.list_groups_for_listing(db, listing_id)
    return {"data": [serialize_option_group(g) for g in groups]}


# =====================================================
# ADMIN: CREATE
# =====================================================
@router.post("", status_code=status.HTTP_201_CREATED)
def create_option_group(
    payload: OptionGroupPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    group = option_service.create_option_group(db, payload.model_dump(exclude_unset=True))
    return {"data": serialize_option_group(group)}


@router.post("/with-values", status_code=status.HTTP_201_CREATED)
def create_option_group_with_values(
    payload: OptionGroupWithValuesPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    data = payload.model_dump(exclude_unset=True, exclude={"default_values"})
    return {"data": option_service.create_option_group_with_values(db, data, payload.default_values)}


# =====================================================
# PUBLIC: SINGLE GROUP
# =====================================================
@router.get("/{group_id}")
def get_option_group(group_id: UUID, db: Session = Depends(get_db)):
    return {"data": serialize_option_group(option_service.get_option_group(db, group_id))}


# =====================================================
# ADMIN: UPDATE / DELETE
# =====================================================
@router.put("/{group_id}")
def update_option_group(
    group_id: UUID,
    payload: OptionGroupPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    group = option_service.update_option_group(db, group_id, payload.model_dump(exclude_unset=True))
    return {"data": serialize_option_group(group)}


@router.delete("/{group_id}")
def delete_option_group(
    group_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    option_service.delete_option_group(db, group_id)
    return {"message": "Option group deleted successfully"}
