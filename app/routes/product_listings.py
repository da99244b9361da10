from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_admin
from app.models import User
from app.schemas import CamelModel
from app.services import catalog as catalog_service
from app.services.catalog import serialize_listing

router = APIRouter(prefix="/product-listings", tags=["product-listings"])


# =====================================================
# Pydantic Schemas
# =====================================================

class ProductListingPayload(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    product: Optional[UUID] = None
    type: Optional[str] = None
    base_price: Optional[int] = None
    discount_price: Optional[int] = None
    is_active: Optional[bool] = None
    option_groups: Optional[List[UUID]] = None


# =====================================================
# PUBLIC: LIST & GET
# =====================================================
@router.get("")
def list_product_listings(
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100, alias="pageSize"),
    product: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
):
    return catalog_service.list_listings(db, page, page_size, product)


@router.get("/{listing_id}")
def get_product_listing(listing_id: UUID, db: Session = Depends(get_db)):
    return {"data": serialize_listing(catalog_service.get_listing(db, listing_id))}


# =====================================================
# ADMIN: CREATE / UPDATE / DELETE
# =====================================================
@router.post("", status_code=status.HTTP_201_CREATED)
def create_product_listing(
    payload: ProductListingPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    listing = catalog_service.create_listing(db, payload.model_dump(exclude_unset=True))
    return {"data": serialize_listing(listing)}


@router.put("/{listing_id}")
def update_product_listing(
    listing_id: UUID,
    payload: ProductListingPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    listing = catalog_service.update_listing(db, listing_id, payload.model_dump(exclude_unset=True))
    return {"data": serialize_listing(listing)}


@router.delete("/{listing_id}")
def delete_product_listing(
    listing_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    catalog_service.delete_listing(db, listing_id)
    return {"message": "Product listing deleted successfully"}
