import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_superadmin
from ..config import settings
from ..db import get_db
from ..models.models import User
from ..schemas.users import PermissionToggle, UserUpdate, UserUpsert
from ..services import permissions as perms
from ..services.time_rules import isoformat


router = APIRouter(prefix="/api/users", tags=["users"])
logger = structlog.get_logger(__name__)


def _user_to_dict(u: User) -> dict:
    return {
        "id": str(u.id),
        "email": u.email,
        "name": u.name,
        "image": u.image,
        "pagePermissions": u.page_permissions or [],
        "role": u.role or perms.USER,
        "approved": bool(u.approved),
        "createdAt": isoformat(u.created_at),
        "updatedAt": isoformat(u.updated_at),
    }


def _get_user(user_id: str, db: Session) -> User:
    """Look a user up by id, falling back to email."""
    user = None
    try:
        user = db.query(User).filter(User.id == uuid.UUID(user_id)).first()
    except ValueError:
        pass
    if user is None:
        user = db.query(User).filter(User.email == user_id.strip().lower()).first()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _dump_permissions(page_permissions) -> list:
    return perms.clean_permissions([p.model_dump(by_alias=True) for p in page_permissions or []])


@router.get("")
def list_users(manageable: bool = False, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    users = db.query(User).order_by(User.created_at.asc()).all()
    if manageable:
        users = perms.manageable_users(users)
    return {"users": [_user_to_dict(u) for u in users], "availablePages": list(perms.AVAILABLE_PAGES)}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {
        **_user_to_dict(user),
        "isSuperAdmin": perms.is_superadmin(user),
        "homePage": perms.first_allowed_page(user),
        "pages": {page_id: perms.page_flags(user, page_id) for page_id in perms.PAGE_IDS},
        "ticketSearchDebounceMs": settings.ticket_search_debounce_ms,
    }


@router.post("")
def upsert_user(body: UserUpsert, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    is_super = perms.is_superadmin(me)
    if not is_super:
        if not me.approved:
            raise HTTPException(status_code=401, detail="Unauthorized")
        if not perms.can(me, "users", "edit"):
            raise HTTPException(
                status_code=403,
                detail="You do not have permission to add users. Only super admins or users with edit "
                "permission on the Users page can add users.",
            )
        if body.page_permissions:
            raise HTTPException(status_code=403, detail="Only super admins can set page permissions when creating users.")
        if body.role is not None and body.role != perms.USER:
            raise HTTPException(status_code=403, detail="Only super admins can set user roles when creating users.")

    email = (body.email or "").strip().lower()
    name = (body.name or "").strip()
    if not email or not name:
        raise HTTPException(status_code=400, detail="Email and name are required")

    role = (body.role or perms.USER) if is_super else perms.USER
    page_permissions = _dump_permissions(body.page_permissions) if is_super else []
    if role == perms.SUPERADMIN:
        page_permissions = perms.full_permissions()
    try:
        perms.validate_role_assignment(role, page_permissions)
    except perms.PermissionRuleError as e:
        raise HTTPException(status_code=400, detail=str(e))

    user = db.query(User).filter(User.email == email).first()
    created = user is None
    if created:
        user = User(
            email=email,
            approved=is_super and role in (perms.ADMIN, perms.SUPERADMIN),
        )
        db.add(user)
    user.name = name
    user.image = body.image
    user.role = role
    user.page_permissions = page_permissions
    db.commit()
    db.refresh(user)
    logger.info("user_upserted", email=email, created=created, role=role, by=me.email)
    return {
        "message": "User created successfully" if created else "User updated successfully",
        "user": _user_to_dict(user),
    }


@router.get("/{user_id}")
def get_user(user_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return {"user": _user_to_dict(_get_user(user_id, db))}


@router.put("/{user_id}")
def update_user(user_id: str, body: UserUpdate, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    fields = body.model_fields_set
    is_super = perms.is_superadmin(me)
    if not is_super and fields & {"page_permissions", "role", "approved"}:
        raise HTTPException(status_code=403, detail="Only super admins can manage user permissions, roles, and approvals")

    user = _get_user(user_id, db)
    if "name" in fields and body.name is not None:
        user.name = body.name.strip()
    if "image" in fields:
        user.image = body.image

    if is_super:
        page_permissions = user.page_permissions or []
        if "page_permissions" in fields:
            page_permissions = _dump_permissions(body.page_permissions)
        role = user.role
        if "role" in fields and body.role is not None:
            role = body.role
            if role == perms.SUPERADMIN:
                page_permissions = perms.full_permissions()
        if fields & {"role", "page_permissions"}:
            try:
                perms.validate_role_assignment(role, page_permissions)
            except perms.PermissionRuleError as e:
                raise HTTPException(status_code=400, detail=str(e))
        if "role" in fields and body.role is not None:
            user.role = role
            if role in (perms.ADMIN, perms.SUPERADMIN):
                user.approved = True
        user.page_permissions = page_permissions
        if "approved" in fields and body.approved is not None:
            user.approved = body.approved
            if body.approved and not perms.has_any_permission(page_permissions) and not perms.is_superadmin(user):
                logger.info("user_approved_without_permissions", email=user.email)

    db.commit()
    db.refresh(user)
    logger.info("user_updated", email=user.email, fields=sorted(fields), by=me.email)
    return {"message": "User updated successfully", "user": _user_to_dict(user)}


@router.patch("/{user_id}/permissions")
def toggle_user_permission(
    user_id: str,
    body: PermissionToggle,
    db: Session = Depends(get_db),
    me: User = Depends(require_superadmin()),
):
    user = _get_user(user_id, db)
    if perms.is_superadmin(user):
        raise HTTPException(status_code=400, detail="Superadmin permissions cannot be changed")
    try:
        updated = perms.toggle_permission(user.page_permissions, body.page_id, body.action, body.enabled)
        if user.role == perms.ADMIN:
            perms.validate_role_assignment(user.role, updated)
    except perms.PermissionRuleError as e:
        raise HTTPException(status_code=400, detail=str(e))
    user.page_permissions = updated
    db.commit()
    db.refresh(user)
    logger.info("user_permission_toggled", email=user.email, page=body.page_id, action=body.action, enabled=body.enabled)
    return {"message": "Permissions updated", "user": _user_to_dict(user)}


@router.delete("/{user_id}")
def delete_user(user_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    if not perms.is_superadmin(me):
        raise HTTPException(status_code=403, detail="Only super admins can delete users")
    user = _get_user(user_id, db)
    if perms.is_superadmin(user):
        raise HTTPException(status_code=400, detail="Super admins cannot be deleted")
    db.delete(user)
    db.commit()
    logger.info("user_deleted", email=user.email, by=me.email)
    return {"message": "User deleted successfully"}
