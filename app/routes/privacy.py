from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models import User
from app.services import privacy as privacy_service
from app.services.privacy import request_metadata, serialize_privacy_setting

router = APIRouter(prefix="/privacy-settings", tags=["privacy"])


# =====================================================
# USER: READ & UPDATE SETTINGS
# =====================================================
@router.get("/me")
def get_my_privacy_settings(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    setting = privacy_service.get_or_create_settings(db, user)
    return {"data": serialize_privacy_setting(setting)}


@router.put("/me")
def update_my_privacy_settings(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    setting = privacy_service.update_settings(
        db,
        user,
        payload,
        request_metadata(request, "profile-update"),
    )
    return {
        "data": serialize_privacy_setting(setting),
        "meta": {"message": "Privacy settings updated successfully"},
    }


@router.patch("/me/consent")
def update_my_consent(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    setting = privacy_service.update_consent(
        db,
        user,
        payload,
        request_metadata(request, "consent-update"),
    )
    return {
        "data": serialize_privacy_setting(setting),
        "meta": {"message": "Consent preferences updated successfully"},
    }


@router.get("/me/consent-history")
def get_my_consent_history(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return {"data": privacy_service.consent_history(db, user)}


@router.post("/me/reset")
def reset_my_privacy_settings(
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    setting = privacy_service.reset_settings(db, user, request_metadata(request, "profile-update"))
    return {
        "data": serialize_privacy_setting(setting),
        "meta": {"message": "Privacy settings reset to defaults successfully"},
    }


# =====================================================
# USER: GDPR DATA RIGHTS
# =====================================================
@router.get("/me/export")
def export_my_data(
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = privacy_service.export_user_data(db, user, request_metadata(request, "api"))
    return {"data": data, "meta": {"message": "User data exported successfully"}}


@router.post("/me/request-deletion")
def request_data_deletion(
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    setting = privacy_service.request_deletion(db, user, request_metadata(request, "api"))
    return {
        "data": serialize_privacy_setting(setting),
        "meta": {"message": "Data deletion request recorded"},
    }


@router.delete("/me/data")
def delete_my_data(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = privacy_service.delete_user_data(db, user)
    message = "User data deleted successfully"
    if result["failed"]:
        message = "User data partially deleted"
    return {"data": result, "meta": {"message": message}}
