from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_admin
from app.models import User
from app.schemas import CamelModel
from app.services import variants as variant_service
from app.services.variants import serialize_variant

router = APIRouter(prefix="/product-listing-variants", tags=["variants"])


# =====================================================
# Pydantic Schemas
# =====================================================

class VariantPayload(CamelModel):
    sku: Optional[str] = None
    base_price: Optional[int] = None
    discount_price: Optional[int] = None
    inventory: Optional[int] = None
    is_active: Optional[bool] = None
    product_listing: Optional[UUID] = None
    option_values: Optional[List[UUID]] = None


class OptionSelectionPayload(CamelModel):
    product_listing_id: Optional[UUID] = None
    option_value_ids: Optional[List[UUID]] = None


class InventoryPayload(CamelModel):
    quantity: int
    operation: str = "set"


# =====================================================
# PUBLIC: LIST
# =====================================================
@router.get("")
def list_variants(
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100, alias="pageSize"),
    product_listing: Optional[UUID] = Query(None, alias="productListing"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    db: Session = Depends(get_db),
):
    return variant_service.list_variants(db, page, page_size, product_listing, is_active)


@router.get("/product-listing/{listing_id}/pricing-summary")
def get_pricing_summary(listing_id: UUID, db: Session = Depends(get_db)):
    return {"data": variant_service.pricing_summary(db, listing_id)}


# =====================================================
# PUBLIC: SELECTION HELPERS
# =====================================================
@router.post("/find-by-options")
def find_variant_by_options(
    payload: OptionSelectionPayload,
    db: Session = Depends(get_db),
):
    variant = variant_service.find_by_options(db, payload.product_listing_id, payload.option_value_ids)
    return {"data": serialize_variant(variant)}


@router.post("/generate-sku")
def generate_variant_sku(
    payload: OptionSelectionPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    sku = variant_service.generate_sku(db, payload.product_listing_id, payload.option_value_ids)
    return {"data": {"sku": sku}}


# =====================================================
# ADMIN: CREATE & BULK PRICES
# =====================================================
@router.post("", status_code=status.HTTP_201_CREATED)
def create_variant(
    payload: VariantPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    variant = variant_service.create_variant(db, payload.model_dump(exclude_unset=True))
    return {"data": serialize_variant(variant)}


@router.post("/bulk-update-prices")
def bulk_update_prices(
    updates: Any = Body(None, embed=True),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return {"data": variant_service.bulk_update_prices(db, updates)}


# =====================================================
# PUBLIC: SINGLE VARIANT
# =====================================================
@router.get("/{variant_id}")
def get_variant(variant_id: UUID, db: Session = Depends(get_db)):
    return {"data": serialize_variant(variant_service.get_variant(db, variant_id))}


@router.get("/{variant_id}/availability")
def get_variant_availability(
    variant_id: UUID,
    quantity: int = Query(1, ge=1),
    db: Session = Depends(get_db),
):
    return {"data": variant_service.check_availability(db, variant_id, quantity)}


# =====================================================
# ADMIN: UPDATE / INVENTORY / DELETE
# =====================================================
@router.put("/{variant_id}")
def update_variant(
    variant_id: UUID,
    payload: VariantPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    variant = variant_service.update_variant(db, variant_id, payload.model_dump(exclude_unset=True))
    return {"data": serialize_variant(variant)}


@router.put("/{variant_id}/inventory")
def update_variant_inventory(
    variant_id: UUID,
    payload: InventoryPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    variant = variant_service.update_inventory(db, variant_id, payload.quantity, payload.operation)
    return {"data": serialize_variant(variant)}


@router.delete("/{variant_id}")
def delete_variant(
    variant_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    variant_service.delete_variant(db, variant_id)
    return {"message": "Variant deleted successfully"}
