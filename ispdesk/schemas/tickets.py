from typing import Any, Optional

from .common import TrimmedModel


class TicketCreate(TrimmedModel):
    client_name: Optional[str] = None
    client_number: Optional[str] = None
    station: Optional[str] = None
    house_number: Optional[str] = None
    category: Optional[str] = None
    date_time_reported: Optional[str] = None
    problem_description: Optional[str] = None
    technicians: Any = None


class TicketUpdate(TrimmedModel):
    status: Optional[str] = None
    technicians: Any = None
    technician: Optional[str] = None  # legacy single assignee
    resolved_at: Optional[str] = None
    resolution_notes: Optional[str] = None


class NamedCreate(TrimmedModel):
    name: Optional[str] = None


class TechnicianCreate(TrimmedModel):
    name: Optional[str] = None
    phone: Optional[str] = None


class TicketCategoryBody(TrimmedModel):
    name: Optional[str] = None
    price: Optional[float] = None
