"""
Page permission derivation for dashboard users.

A user carries a list of {pageId, permissions[]} entries. Superadmins
implicitly hold every action on every page. Flags derived here gate the
dashboard's Add/Edit/Delete controls; the API enforces the same rules through
auth.security.require_page_permission.
"""
from typing import Iterable, List, Optional

SUPERADMIN = "superadmin"
ADMIN = "admin"
USER = "user"
ROLES = (SUPERADMIN, ADMIN, USER)

PERMISSION_TYPES = ("view", "add", "edit", "delete")

AVAILABLE_PAGES = (
    {"id": "dashboard", "name": "Dashboard", "path": "/admin"},
    {"id": "tickets", "name": "Tickets", "path": "/admin/tickets"},
    {"id": "expenses", "name": "Expenses", "path": "/admin/expenses"},
    {"id": "stations", "name": "Stations", "path": "/admin/stations"},
    {"id": "equipment", "name": "Equipment", "path": "/admin/equipment"},
    {"id": "internet-connections", "name": "Internet Connections", "path": "/admin/internet-connections"},
    {"id": "users", "name": "User Management", "path": "/admin/users"},
    {"id": "settings", "name": "Settings", "path": "/admin/settings"},
    {"id": "send-message", "name": "Send Message", "path": "/admin/send-message"},
    {"id": "equipment-requests", "name": "Request Equipment", "path": "/admin/equipment-requests"},
    {"id": "manage-requests", "name": "Manage Requests", "path": "/admin/manage-requests"},
    {"id": "station-tasks", "name": "Station Tasks", "path": "/admin/station-tasks"},
)

PAGE_IDS = tuple(p["id"] for p in AVAILABLE_PAGES)


class PermissionRuleError(ValueError):
    """A role/permission combination violates an administration rule."""


def is_superadmin(user) -> bool:
    return (getattr(user, "role", None) or USER) == SUPERADMIN


def _entry_for(page_permissions: Optional[Iterable[dict]], page_id: str) -> Optional[dict]:
    for entry in page_permissions or []:
        if entry.get("pageId") == page_id:
            return entry
    return None


def effective_permissions(user, page_id: str) -> frozenset:
    if is_superadmin(user):
        return frozenset(PERMISSION_TYPES)
    entry = _entry_for(getattr(user, "page_permissions", None), page_id)
    if not entry:
        return frozenset()
    return frozenset(p for p in entry.get("permissions") or [] if p in PERMISSION_TYPES)


def can(user, page_id: str, action: str) -> bool:
    return action in effective_permissions(user, page_id)


def page_flags(user, page_id: str) -> dict:
    perms = effective_permissions(user, page_id)
    return {
        "canView": "view" in perms,
        "canAdd": "add" in perms,
        "canEdit": "edit" in perms,
        "canDelete": "delete" in perms,
    }


def toggle_permission(page_permissions: Optional[List[dict]], page_id: str, action: str, enabled: bool) -> List[dict]:
    """
    Return a new permission list with a single checkbox flipped.

    Turning an action on creates the page entry when missing. Turning the
    last action of a page off removes the entry entirely.
    """
    if action not in PERMISSION_TYPES:
        raise PermissionRuleError(f"Unknown permission: {action}")
    if page_id not in PAGE_IDS:
        raise PermissionRuleError(f"Unknown page: {page_id}")

    result: List[dict] = []
    found = False
    for entry in page_permissions or []:
        perms = list(entry.get("permissions") or [])
        if entry.get("pageId") == page_id:
            found = True
            if enabled and action not in perms:
                perms.append(action)
            elif not enabled:
                perms = [p for p in perms if p != action]
            if not perms:
                continue
        result.append({"pageId": entry.get("pageId"), "permissions": perms})

    if enabled and not found:
        result.append({"pageId": page_id, "permissions": [action]})
    return result


def has_any_permission(page_permissions: Optional[Iterable[dict]]) -> bool:
    return any(entry.get("permissions") for entry in page_permissions or [])


def full_permissions() -> List[dict]:
    return [{"pageId": page_id, "permissions": list(PERMISSION_TYPES)} for page_id in PAGE_IDS]


def clean_permissions(page_permissions: Optional[Iterable[dict]]) -> List[dict]:
    """Drop unknown pages/actions and empty entries from a submitted list."""
    cleaned = []
    for entry in page_permissions or []:
        page_id = entry.get("pageId")
        if page_id not in PAGE_IDS:
            continue
        perms = []
        for p in entry.get("permissions") or []:
            if p in PERMISSION_TYPES and p not in perms:
                perms.append(p)
        if perms:
            cleaned.append({"pageId": page_id, "permissions": perms})
    return cleaned


def validate_role_assignment(role: str, page_permissions: Optional[Iterable[dict]]) -> None:
    if role not in ROLES:
        raise PermissionRuleError(f"Invalid role: {role}")
    if role == ADMIN and not has_any_permission(page_permissions):
        raise PermissionRuleError(
            "Admin users must have at least one page permission. "
            "Please grant permissions before assigning the admin role."
        )


def page_for_path(path: str) -> Optional[dict]:
    for page in AVAILABLE_PAGES:
        if page["path"] == path or page["path"] == path.rstrip("/"):
            return page
    return None


def first_allowed_page(user) -> Optional[str]:
    if getattr(user, "approved", False) is False:
        return None
    if is_superadmin(user):
        return "/admin"
    for entry in getattr(user, "page_permissions", None) or []:
        if "view" in (entry.get("permissions") or []):
            for page in AVAILABLE_PAGES:
                if page["id"] == entry.get("pageId"):
                    return page["path"]
    return None


def manageable_users(users: Iterable) -> list:
    """Superadmins are never listed for editing or deletion."""
    return [u for u in users if not is_superadmin(u)]
