from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_admin
from app.models import User
from app.schemas import CamelModel
from app.services import catalog as catalog_service
from app.services.catalog import serialize_product

router = APIRouter(prefix="/products", tags=["products"])


# =====================================================
# Pydantic Schemas
# =====================================================

class ProductPayload(CamelModel):
    name: Optional[str] = None
    sku: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = None
    inventory: Optional[int] = None
    weight: Optional[float] = None
    is_active: Optional[bool] = None
    status: Optional[str] = None
    categories: Optional[List[UUID]] = None


# =====================================================
# PUBLIC: LIST PRODUCTS
# =====================================================
@router.get("")
def list_products(
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100, alias="pageSize"),
    q: Optional[str] = Query(None),
    category: Optional[UUID] = Query(None),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    db: Session = Depends(get_db),
):
    return catalog_service.list_products(db, page, page_size, q, category, is_active)


@router.get("/{product_id}")
def get_product(product_id: UUID, db: Session = Depends(get_db)):
    return {"data": serialize_product(catalog_service.get_product(db, product_id))}


# =====================================================
# ADMIN: CREATE PRODUCT
# =====================================================
@router.post("", status_code=status.HTTP_201_CREATED)
def create_product(
    payload: ProductPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    product = catalog_service.create_product(db, payload.model_dump(exclude_unset=True))
    return {"data": serialize_product(product)}
