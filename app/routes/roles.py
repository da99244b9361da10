from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user, require_admin
from app.models import User
from app.schemas import CamelModel
from app.services import roles as role_service
from app.services.roles import serialize_role_user

router = APIRouter(prefix="/role-management", tags=["roles"])


# =====================================================
# Pydantic Schemas
# =====================================================

class AssignRolePayload(CamelModel):
    user_id: Optional[UUID] = None
    role: Optional[str] = None


class RevokeRolePayload(CamelModel):
    user_id: Optional[UUID] = None


class CheckPermissionPayload(CamelModel):
    permission: Optional[str] = None
    role: Optional[str] = None


# =====================================================
# ADMIN: ASSIGN / REVOKE
# =====================================================
@router.post("/assign")
def assign_role(
    payload: AssignRolePayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    user = role_service.assign_role(db, admin, payload.user_id, payload.role)
    return {"success": True, "user": serialize_role_user(user)}


@router.post("/revoke")
def revoke_role(
    payload: RevokeRolePayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    user = role_service.revoke_role(db, admin, payload.user_id)
    return {"success": True, "user": serialize_role_user(user)}


# =====================================================
# USER: HIERARCHY & PERMISSIONS
# =====================================================
@router.get("/hierarchy")
def get_role_hierarchy(user: User = Depends(get_current_user)):
    return {"success": True, "hierarchy": role_service.ROLE_HIERARCHY}


@router.post("/check-permission")
def check_permission(
    payload: CheckPermissionPayload,
    user: User = Depends(get_current_user),
):
    if not payload.permission:
        raise HTTPException(status_code=400, detail="Permission is required")

    role = payload.role or user.role
    if role not in role_service.VALID_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")

    return {
        "success": True,
        "hasPermission": role_service.has_permission(role, payload.permission),
        "userRole": role,
        "permission": payload.permission,
    }


@router.get("/permissions")
def get_permissions(user: User = Depends(get_current_user)):
    return {
        "success": True,
        "userRole": user.role,
        "permissions": role_service.get_role_permissions(user.role),
        "matrix": role_service.permission_matrix(),
    }
