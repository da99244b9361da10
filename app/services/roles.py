"""
Role hierarchy and permission inheritance.

Permissions are ``resource.action`` strings. ``*`` grants everything and
``resource.*`` grants every action on one resource. A role's effective
permissions are its own grants plus those of every role it inherits.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.models import User, UserRole, utcnow
from app.schemas import isoformat

logger = logging.getLogger(__name__)

VALID_ROLES = tuple(r.value for r in UserRole)
DEFAULT_ROLE = UserRole.customer.value

# Roles each role may act on, itself included
ROLE_HIERARCHY = {
    "admin": ["admin", "manager", "support", "moderator", "customer"],
    "manager": ["manager", "support", "moderator", "customer"],
    "support": ["support", "customer"],
    "moderator": ["moderator", "customer"],
    "customer": ["customer"],
}

ASSIGNING_ROLES = ("admin", "manager")

PERMISSION_INHERITANCE = {
    "admin": {
        "inherits": [],
        "grants": ["*"],
    },
    "manager": {
        "inherits": ["support", "moderator"],
        "grants": [
            "product.create",
            "product.update",
            "category.create",
            "category.update",
            "order.update",
            "user.read",
            "user.update",
            "inventory.create",
            "inventory.update",
            "stock-reservation.create",
            "stock-reservation.update",
        ],
    },
    "support": {
        "inherits": ["customer"],
        "grants": [
            "product.read",
            "category.read",
            "order.read",
            "order.update",
            "user.read",
            "address.read",
            "inventory.read",
            "stock-reservation.read",
            "user-preference.read",
            "privacy-setting.read",
        ],
    },
    "moderator": {
        "inherits": ["customer"],
        "grants": [
            "product.read",
            "product.update",
            "category.read",
            "order.read",
            "order.update",
            "user.read",
            "user.update",
            "address.read",
            "inventory.read",
            "stock-reservation.read",
            "user-preference.read",
            "privacy-setting.read",
        ],
    },
    "customer": {
        "inherits": [],
        "grants": [
            "product.read",
            "category.read",
            "order.create",
            "order.read",
            "address.create",
            "address.read",
            "address.update",
            "address.delete",
            "user-preference.create",
            "user-preference.read",
            "user-preference.update",
            "privacy-setting.create",
            "privacy-setting.read",
            "privacy-setting.update",
        ],
    },
}


# =====================================================
# PERMISSIONS
# =====================================================

def get_role_permissions(role: str) -> List[str]:
    """Own grants first, then inherited ones, without duplicates."""
    config = PERMISSION_INHERITANCE.get(role)
    if config is None:
        return list(PERMISSION_INHERITANCE[DEFAULT_ROLE]["grants"])

    permissions = list(config["grants"])
    for inherited in config["inherits"]:
        for permission in get_role_permissions(inherited):
            if permission not in permissions:
                permissions.append(permission)
    return permissions


def has_permission(role: str, permission: str) -> bool:
    granted = get_role_permissions(role)
    if "*" in granted or permission in granted:
        return True
    resource = permission.split(".")[0]
    return f"{resource}.*" in granted


def can_assign_role(assigner_role: str, target_role: str) -> bool:
    if assigner_role not in ASSIGNING_ROLES:
        return False
    return target_role in ROLE_HIERARCHY.get(assigner_role, [])


def can_revoke_role(revoker_role: str, target_role: str) -> bool:
    return revoker_role == "admin"


def validate_role_assignment(assigner_role: str, target_role: str) -> List[str]:
    errors = []
    if not can_assign_role(assigner_role, target_role):
        errors.append(f"Role {assigner_role} cannot assign role {target_role}")

    assigner_scope = ROLE_HIERARCHY.get(assigner_role, [assigner_role])
    target_scope = ROLE_HIERARCHY.get(target_role, [target_role])
    if len(target_scope) > len(assigner_scope):
        errors.append(f"Cannot assign role {target_role} as it is higher in hierarchy than {assigner_role}")

    if target_role == "admin" and assigner_role != "admin":
        errors.append("Only admin users can assign admin role")
    return errors


def permission_matrix() -> Dict[str, Dict[str, Any]]:
    return {
        role: {
            "permissions": get_role_permissions(role),
            "inheritedFrom": list(config["inherits"]),
            "canAssign": [r for r in ROLE_HIERARCHY if can_assign_role(role, r)],
            "canRevoke": [r for r in ROLE_HIERARCHY if can_revoke_role(role, r)],
        }
        for role, config in PERMISSION_INHERITANCE.items()
    }


# =====================================================
# ASSIGNMENT
# =====================================================

def serialize_role_user(user: User) -> Dict[str, Any]:
    return {
        "id": str(user.id),
        "email": user.email,
        "fullName": user.full_name,
        "role": user.role,
        "roleAssignedAt": isoformat(user.role_assigned_at),
    }


def _get_user(db: Session, user_id) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def assign_role(db: Session, assigner: User, user_id, role: Optional[str]) -> User:
    if not user_id or not role:
        raise HTTPException(status_code=400, detail="User ID and role are required")
    if role not in VALID_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")

    user = _get_user(db, user_id)

    errors = validate_role_assignment(assigner.role, role)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Role assignment validation failed: {', '.join(errors)}",
        )

    user.role = role
    user.role_assigned_at = utcnow()
    db.commit()
    db.refresh(user)

    logger.info("Role %s assigned to user %s by %s", role, user.id, assigner.id)
    return user


def revoke_role(db: Session, revoker: User, user_id) -> User:
    if not user_id:
        raise HTTPException(status_code=400, detail="User ID is required")

    user = _get_user(db, user_id)
    if not can_revoke_role(revoker.role, user.role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions to revoke roles",
        )

    user.role = DEFAULT_ROLE
    user.role_assigned_at = utcnow()
    db.commit()
    db.refresh(user)

    logger.info("Role revoked from user %s by %s", user.id, revoker.id)
    return user
