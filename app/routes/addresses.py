from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import Caller, require_owner
from app.schemas import CamelModel
from app.services import addresses as address_service
from app.services.address_validation import (
    format_address,
    validate_address,
    validate_address_for_country,
)
from app.services.addresses import serialize_address

router = APIRouter(prefix="/addresses", tags=["addresses"])


# =====================================================
# Pydantic Schemas
# =====================================================

class AddressPayload(CamelModel):
    type: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    is_default: Optional[bool] = None


class AddressSearchPayload(CamelModel):
    query: Optional[str] = None
    type: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None


class AddressImportPayload(CamelModel):
    addresses: List[AddressPayload]


# =====================================================
# OWNER: LIST ADDRESSES
# =====================================================
@router.get("", status_code=status.HTTP_200_OK)
def list_addresses(
    type: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    addresses = address_service.list_addresses(db, caller, type)
    return {"data": [serialize_address(a) for a in addresses]}


# =====================================================
# OWNER: CREATE ADDRESS
# =====================================================
@router.post("", status_code=status.HTTP_201_CREATED)
def create_address(
    payload: AddressPayload,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    """Create an address; the first one of its type becomes the default."""
    address = address_service.create_address(db, caller, payload.model_dump(exclude_unset=True))
    return {"data": serialize_address(address)}


# =====================================================
# OWNER: ADDRESSES BY TYPE
# =====================================================
@router.get("/type/{address_type}")
def get_addresses_by_type(
    address_type: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    addresses = address_service.find_by_type(db, caller, address_type)
    return {"data": [serialize_address(a) for a in addresses]}


@router.get("/default/{address_type}")
def get_default_address(
    address_type: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    address = address_service.get_default_address(db, caller, address_type)
    if not address:
        raise HTTPException(status_code=404, detail=f"No default {address_type} address found")
    return {"data": serialize_address(address)}


# =====================================================
# OWNER: SEARCH / STATS / BOOK / ANALYTICS
# =====================================================
@router.post("/search")
def search_addresses(
    payload: AddressSearchPayload,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    addresses = address_service.search_addresses(db, caller, payload.model_dump())
    return {"data": [serialize_address(a) for a in addresses]}


@router.get("/stats")
def get_address_stats(
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    return {"data": address_service.get_stats(db, caller)}


@router.get("/book")
def get_address_book(
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    return {"data": address_service.get_address_book(db, caller)}


@router.get("/analytics")
def get_address_analytics(
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    return {"data": address_service.get_analytics(db, caller)}


# =====================================================
# OWNER: EXPORT / IMPORT
# =====================================================
@router.get("/export")
def export_addresses(
    format: str = Query("json"),
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    exported = address_service.export_addresses(db, caller, format)
    if format == "csv":
        return Response(
            content=exported,
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=addresses.csv"},
        )
    return {"data": exported}


@router.post("/import")
def import_addresses(
    payload: AddressImportPayload,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    entries = [entry.model_dump(exclude_unset=True) for entry in payload.addresses]
    return {"data": address_service.import_addresses(db, caller, entries)}


# =====================================================
# PUBLIC: VALIDATION
# =====================================================
@router.post("/validate")
def validate(payload: AddressPayload) -> Dict[str, Any]:
    data = payload.model_dump(exclude_unset=True)
    result = validate_address(data)
    if result["isValid"]:
        result["formatted"] = format_address(data)
    return {"data": result}


@router.post("/validate/{country}")
def validate_for_country(country: str, payload: AddressPayload) -> Dict[str, Any]:
    data = payload.model_dump(exclude_unset=True)
    return {"data": validate_address_for_country(data, country)}


# =====================================================
# OWNER: SINGLE ADDRESS
# =====================================================
@router.get("/{address_id}")
def get_address(
    address_id: UUID,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    address = address_service.get_owned_address(db, address_id, caller)
    return {"data": serialize_address(address)}


@router.put("/{address_id}")
def update_address(
    address_id: UUID,
    payload: AddressPayload,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    address = address_service.update_address(db, address_id, caller, payload.model_dump(exclude_unset=True))
    return {"data": serialize_address(address)}


@router.delete("/{address_id}")
def delete_address(
    address_id: UUID,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    promoted = address_service.delete_address(db, address_id, caller)
    return {
        "message": "Address deleted successfully",
        "newDefault": serialize_address(promoted) if promoted else None,
    }


@router.post("/{address_id}/set-default")
def set_default_address(
    address_id: UUID,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_owner),
):
    address = address_service.set_as_default(db, address_id, caller)
    return {"message": "Default address updated", "data": serialize_address(address)}
