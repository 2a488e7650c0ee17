import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import User
from ..services import permissions as perms


http_bearer = HTTPBearer(auto_error=False)
logger = structlog.get_logger(__name__)


def _create_token(sub: str, ttl_seconds: int, extra: Optional[dict] = None) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    if extra:
        payload.update(extra)
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token


def create_access_token(email: str, name: Optional[str] = None, image: Optional[str] = None) -> str:
    """Tokens are issued by the identity-provider bridge once Google sign-in succeeds."""
    extra = {"name": name} if name else {}
    if image:
        extra["picture"] = image
    return _create_token(email.strip().lower(), settings.jwt_ttl_seconds, extra=extra)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def provision_user(db: Session, email: str, name: Optional[str] = None, image: Optional[str] = None) -> User:
    """
    Create the dashboard account on first sign-in.

    The very first account becomes an approved superadmin holding every
    permission; everyone after that waits for approval with no permissions.
    """
    is_first = db.query(User).count() == 0
    user = User(
        email=email,
        name=name or email.split("@")[0],
        image=image,
        role=perms.SUPERADMIN if is_first else perms.USER,
        approved=is_first,
        page_permissions=perms.full_permissions() if is_first else [],
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("user_provisioned", email=email, role=user.role, approved=user.approved)
    return user


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
):
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    payload = decode_token(creds.credentials)
    email = (payload.get("sub") or "").strip().lower()
    if "@" not in email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid subject")
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        return provision_user(db, email, payload.get("name"), payload.get("picture"))
    # keep the profile in sync with the identity provider
    name, image = payload.get("name"), payload.get("picture")
    if (name and name != user.name) or (image and image != user.image):
        user.name = name or user.name
        user.image = image or user.image
        db.commit()
        db.refresh(user)
    return user


def require_approved(user: User = Depends(get_current_user)):
    if not user.approved:
        raise HTTPException(status_code=403, detail="Your account is pending approval")
    return user


def require_page_permission(page_id: str, action: str = "view"):
    def _dep(user: User = Depends(require_approved)):
        if not perms.can(user, page_id, action):
            raise HTTPException(status_code=403, detail="Forbidden")
        return user

    return _dep


def require_superadmin():
    def _dep(user: User = Depends(get_current_user)):
        if not perms.is_superadmin(user):
            raise HTTPException(status_code=403, detail="Only superadmins can perform this action")
        return user

    return _dep
