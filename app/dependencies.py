"""
Route policies.

Every route picks one of three policies, mirroring how the storefront
gates access:

* ``is_public`` never rejects; it only works out who is calling.
* ``get_current_user`` (is-authenticated) needs a valid bearer token.
* ``require_admin`` (is-admin) needs a user whose role is ``admin``.

Addresses resolve their owner with ``require_owner``, which refuses a
request carrying both a token and a session ID. Carts use
``require_cart_owner``, which lets the signed-in user win.
"""
import enum
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models import User
from app.security import decode_token, get_token_from_request


class UserType(str, enum.Enum):
    PUBLIC = "public"
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


@dataclass
class Caller:
    user_type: UserType
    user: Optional[User] = None
    session_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.is_admin


def _resolve_user(request: Request, db: Session) -> Optional[User]:
    token = get_token_from_request(request)
    if not token:
        return None

    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        return None

    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        return None

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        return None
    return user


# =========================
# IS-PUBLIC
# =========================
def is_public(
    request: Request,
    session_id: Optional[str] = Query(None, alias="sessionId"),
    db: Session = Depends(get_db),
) -> Caller:
    user = _resolve_user(request, db)

    if session_id:
        user_type = UserType.GUEST
    elif user:
        user_type = UserType.AUTHENTICATED
    else:
        user_type = UserType.PUBLIC

    return Caller(user_type=user_type, user=user, session_id=session_id or None)


# =========================
# IS-AUTHENTICATED
# =========================
def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    token = get_token_from_request(request)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    user = _resolve_user(request, db)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token or user inactive",
        )

    return user


# =========================
# IS-ADMIN
# =========================
def require_admin(
    user: User = Depends(get_current_user),
) -> User:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


# =========================
# OWNER RESOLUTION
# =========================
def require_owner(caller: Caller = Depends(is_public)) -> Caller:
    """A caller must be either a user or a guest session, not both."""
    if caller.user and caller.session_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Ambiguous request - provide either user authentication or session ID, not both",
        )
    if not caller.user and not caller.session_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication or session ID required",
        )
    return caller


def require_cart_owner(caller: Caller = Depends(is_public)) -> Caller:
    """A cart belongs to the user when signed in, otherwise to the guest session."""
    if caller.user:
        return Caller(user_type=UserType.AUTHENTICATED, user=caller.user)
    if not caller.session_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User or session ID is required",
        )
    return caller
