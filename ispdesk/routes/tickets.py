import math
import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth.security import require_page_permission
from ..config import settings
from ..db import get_db
from ..models.models import Ticket, User
from ..schemas.tickets import TicketCreate, TicketUpdate
from ..services.normalization import normalize_technicians
from ..services.sequences import next_code
from ..services.ticket_stats import TICKET_STATUSES, ticket_stats
from ..services.time_rules import isoformat, parse_datetime, utcnow


router = APIRouter(prefix="/api/tickets", tags=["tickets"])
logger = structlog.get_logger(__name__)


def _serialize_ticket(t: Ticket) -> dict:
    data = {
        "_id": str(t.id),
        "ticketId": t.ticket_id,
        "clientName": t.client_name,
        "clientNumber": t.client_number,
        "station": t.station,
        "houseNumber": t.house_number,
        "category": t.category,
        "status": t.status,
        "dateTimeReported": isoformat(t.date_time_reported),
        "problemDescription": t.problem_description,
        "technicians": normalize_technicians(t.technicians),
        "createdAt": isoformat(t.created_at),
        "updatedAt": isoformat(t.updated_at),
    }
    if t.status == "closed":
        data["resolution"] = {
            "resolvedAt": isoformat(t.resolved_at),
            "resolutionNotes": t.resolution_notes or "",
        }
    return data


def _get_ticket(ticket_id: uuid.UUID, db: Session) -> Ticket:
    t = db.query(Ticket).filter(Ticket.id == ticket_id).first()
    if not t:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return t


def _parse_timestamp(value: Optional[str], label: str):
    try:
        return parse_datetime(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


@router.get("")
def list_tickets(
    page: Optional[int] = Query(default=None, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    status: Optional[str] = None,
    category: Optional[str] = None,
    station: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("tickets", "view")),
):
    q = db.query(Ticket)
    if status and status != "all":
        q = q.filter(Ticket.status == status)
    if category and category != "all":
        q = q.filter(Ticket.category == category)
    if station and station != "all":
        q = q.filter(Ticket.station == station)
    if search and search.strip():
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            Ticket.ticket_id.ilike(like),
            Ticket.client_name.ilike(like),
            Ticket.client_number.ilike(like),
            Ticket.house_number.ilike(like),
            Ticket.problem_description.ilike(like),
        ))
    q = q.order_by(Ticket.created_at.desc())

    total = q.count()
    if page is None:
        rows = q.all()
        page, limit = 1, max(total, 1)
    else:
        limit = limit or settings.ticket_page_size
        rows = q.offset((page - 1) * limit).limit(limit).all()
    return {
        "tickets": [_serialize_ticket(t) for t in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    }


@router.get("/stats")
def get_ticket_stats(db: Session = Depends(get_db), _=Depends(require_page_permission("tickets", "view"))):
    return ticket_stats(db.query(Ticket).all(), utcnow())


@router.get("/by-ticket-id/{code}")
def get_ticket_by_code(code: str, db: Session = Depends(get_db), _=Depends(require_page_permission("tickets", "view"))):
    t = db.query(Ticket).filter(Ticket.ticket_id == code.strip().upper()).first()
    if not t:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return {"ticket": _serialize_ticket(t)}


@router.post("", status_code=201)
def create_ticket(
    body: TicketCreate,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("tickets", "add")),
):
    required = (
        body.client_name, body.client_number, body.station, body.house_number,
        body.category, body.date_time_reported, body.problem_description,
    )
    if not all(required):
        raise HTTPException(status_code=400, detail="All fields are required")
    reported = _parse_timestamp(body.date_time_reported, "dateTimeReported")

    t = Ticket(
        ticket_id=next_code(db, Ticket, Ticket.ticket_id, "TKT"),
        client_name=body.client_name,
        client_number=body.client_number,
        station=body.station,
        house_number=body.house_number,
        category=body.category,
        status="open",
        date_time_reported=reported,
        problem_description=body.problem_description,
        technicians=normalize_technicians(body.technicians),
    )
    db.add(t)
    db.commit()
    db.refresh(t)
    logger.info("ticket_created", ticket_id=t.ticket_id, station=t.station, category=t.category, by=me.email)
    return {"success": True, "ticket": _serialize_ticket(t)}


@router.get("/{ticket_id}")
def get_ticket(ticket_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(require_page_permission("tickets", "view"))):
    return {"ticket": _serialize_ticket(_get_ticket(ticket_id, db))}


@router.patch("/{ticket_id}")
def update_ticket(
    ticket_id: uuid.UUID,
    body: TicketUpdate,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("tickets", "edit")),
):
    t = _get_ticket(ticket_id, db)
    fields = body.model_fields_set

    if body.status:
        if body.status not in TICKET_STATUSES:
            raise HTTPException(status_code=400, detail=f"Invalid status: {body.status}")
        t.status = body.status
    if fields & {"technicians", "technician"}:
        t.technicians = normalize_technicians(body.technicians, body.technician)
    if "resolved_at" in fields:
        t.resolved_at = _parse_timestamp(body.resolved_at, "resolvedAt")
    if "resolution_notes" in fields:
        t.resolution_notes = body.resolution_notes
    if t.status == "closed" and t.resolved_at is None:
        t.resolved_at = utcnow()

    db.commit()
    db.refresh(t)
    logger.info("ticket_updated", ticket_id=t.ticket_id, status=t.status, fields=sorted(fields), by=me.email)
    return {"success": True, "ticket": _serialize_ticket(t)}


@router.delete("/{ticket_id}")
def delete_ticket(
    ticket_id: uuid.UUID,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("tickets", "delete")),
):
    t = _get_ticket(ticket_id, db)
    db.delete(t)
    db.commit()
    logger.info("ticket_deleted", ticket_id=t.ticket_id, by=me.email)
    return {"success": True, "message": "Ticket deleted successfully"}
