import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import EmailStr
from sqlalchemy.orm import Session

from app.config import ADMIN_EMAIL, ADMIN_PASSWORD
from app.database import get_db
from app.dependencies import get_current_user
from app.models import User, UserRole
from app.schemas import CamelModel, isoformat
from app.security import create_token, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================
# SCHEMAS
# =============================

class RegisterRequest(CamelModel):
    email: EmailStr
    password: str
    confirm_password: Optional[str] = None
    full_name: Optional[str] = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


def serialize_user(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "fullName": user.full_name,
        "role": user.role,
        "isActive": user.is_active,
        "createdAt": isoformat(user.created_at),
    }


# =============================
# ADMIN BOOTSTRAP
# =============================

def ensure_admin_exists(db: Session) -> None:
    """
    Make sure the account named by ADMIN_EMAIL exists and is an admin.
    Safe to run on every startup.
    """
    if not ADMIN_EMAIL or not ADMIN_PASSWORD:
        logger.warning("ADMIN_EMAIL or ADMIN_PASSWORD not set, admin bootstrap skipped")
        return

    admin = db.query(User).filter(User.email == ADMIN_EMAIL).first()

    if admin:
        if not admin.is_admin:
            admin.role = UserRole.admin.value
            db.commit()
            logger.warning("Existing user %s upgraded to admin", admin.email)
        return

    admin = User(
        email=ADMIN_EMAIL,
        hashed_password=hash_password(ADMIN_PASSWORD),
        role=UserRole.admin.value,
        is_active=True,
    )
    db.add(admin)
    db.commit()

    logger.info("Admin user created from environment variables")


# =============================
# REGISTER (CUSTOMER ONLY)
# =============================

@router.post("/register", status_code=201)
def register_user(payload: RegisterRequest, db: Session = Depends(get_db)):
    if payload.confirm_password is not None and payload.password != payload.confirm_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Passwords do not match",
        )

    email = payload.email.lower()
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    user = User(
        email=email,
        hashed_password=hash_password(payload.password),
        full_name=payload.full_name,
        role=UserRole.customer.value,
        is_active=True,
    )

    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("User %s registered", user.id)

    return {
        "status": "success",
        "message": "Account created successfully",
        "token": create_token(user.id, user.role),
        "user": serialize_user(user),
    }


# =============================
# LOGIN (CUSTOMER + ADMIN)
# =============================

@router.post("/login")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.lower()).first()

    if not user or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account disabled",
        )

    return {
        "status": "success",
        "token": create_token(user.id, user.role),
        "role": user.role,
        "email": user.email,
    }


# =============================
# CURRENT USER
# =============================

@router.get("/me")
def get_me(user: User = Depends(get_current_user)):
    return {"data": serialize_user(user)}
