from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_admin
from app.models import User
from app.schemas import CamelModel
from app.services import categories as category_service
from app.services.categories import serialize_category

router = APIRouter(prefix="/categories", tags=["categories"])


# =====================================================
# Pydantic Schemas
# =====================================================

class CategoryPayload(CamelModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    parent_id: Optional[UUID] = Field(None, alias="parent")
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


class ProductIdsPayload(CamelModel):
    product_ids: Optional[List[UUID]] = None


class MoveProductsPayload(ProductIdsPayload):
    target_category_id: Optional[UUID] = None


# =====================================================
# PUBLIC: LIST & TRAVERSALS
# =====================================================
@router.get("")
def list_categories(
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100, alias="pageSize"),
    parent: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    db: Session = Depends(get_db),
):
    parent_filter = parent
    if parent and parent != "null":
        try:
            parent_filter = UUID(parent)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid parent id: {parent}")
    return category_service.list_categories(db, page, page_size, parent_filter, is_active)


@router.get("/tree")
def get_category_tree(db: Session = Depends(get_db)):
    return {"data": category_service.get_tree(db)}


@router.get("/navigation")
def get_navigation(
    max_depth: int = Query(3, ge=1, le=10, alias="maxDepth"),
    db: Session = Depends(get_db),
):
    return {"data": category_service.get_navigation(db, max_depth)}


@router.get("/search")
def search_categories(
    q: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return {"data": category_service.search_categories(db, q, limit)}


# =====================================================
# ADMIN: CREATE
# =====================================================
@router.post("", status_code=status.HTTP_201_CREATED)
def create_category(
    payload: CategoryPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    category = category_service.create_category(db, payload.model_dump(exclude_unset=True))
    return {"data": serialize_category(category)}


# =====================================================
# PUBLIC: SINGLE CATEGORY
# =====================================================
@router.get("/{category_id}")
def get_category(category_id: UUID, db: Session = Depends(get_db)):
    category = category_service.get_category(db, category_id)
    data = serialize_category(category)
    data["breadcrumbs"] = category_service.get_breadcrumbs(db, category_id)
    return {"data": data}


@router.get("/{category_id}/breadcrumbs")
def get_breadcrumbs(category_id: UUID, db: Session = Depends(get_db)):
    return {"data": category_service.get_breadcrumbs(db, category_id)}


@router.get("/{category_id}/siblings")
def get_siblings(category_id: UUID, db: Session = Depends(get_db)):
    return {"data": category_service.get_siblings(db, category_id)}


@router.get("/{category_id}/stats")
def get_category_stats(category_id: UUID, db: Session = Depends(get_db)):
    return {"data": category_service.get_stats(db, category_id)}


@router.get("/{category_id}/products")
def get_category_products(
    category_id: UUID,
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100, alias="pageSize"),
    db: Session = Depends(get_db),
):
    return category_service.get_products(db, category_id, page, page_size)


# =====================================================
# ADMIN: UPDATE / DELETE
# =====================================================
@router.put("/{category_id}")
def update_category(
    category_id: UUID,
    payload: CategoryPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    category = category_service.update_category(db, category_id, payload.model_dump(exclude_unset=True))
    return {"data": serialize_category(category)}


@router.delete("/{category_id}")
def delete_category(
    category_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    category_service.delete_category(db, category_id)
    return {"message": "Category deleted successfully"}


# =====================================================
# ADMIN: PRODUCT ASSIGNMENT
# =====================================================
@router.post("/{category_id}/products/assign")
def assign_products(
    category_id: UUID,
    payload: ProductIdsPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return {"data": category_service.assign_products(db, category_id, payload.product_ids)}


@router.post("/{category_id}/products/remove")
def remove_products(
    category_id: UUID,
    payload: ProductIdsPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return {"data": category_service.remove_products(db, category_id, payload.product_ids)}


@router.post("/{category_id}/products/move")
def move_products(
    category_id: UUID,
    payload: MoveProductsPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return {
        "data": category_service.move_products(
            db,
            category_id,
            payload.product_ids,
            payload.target_category_id,
        )
    }
