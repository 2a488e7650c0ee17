from typing import List, Optional

from .common import CamelModel


class PagePermission(CamelModel):
    page_id: str
    permissions: List[str] = []


class UserUpsert(CamelModel):
    email: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None
    page_permissions: Optional[List[PagePermission]] = None
    role: Optional[str] = None


class UserUpdate(CamelModel):
    name: Optional[str] = None
    image: Optional[str] = None
    page_permissions: Optional[List[PagePermission]] = None
    role: Optional[str] = None
    approved: Optional[bool] = None


class PermissionToggle(CamelModel):
    page_id: str
    action: str
    enabled: bool
