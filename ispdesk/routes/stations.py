import uuid
from collections import Counter

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth.security import require_page_permission
from ..db import get_db
from ..models.models import Station, Ticket, User
from ..schemas.stations import StationCreate, StationUpdate
from ..services.sequences import next_code
from ..services.time_rules import ensure_utc, isoformat, month_bounds, utcnow


router = APIRouter(prefix="/api/stations", tags=["stations"])
logger = structlog.get_logger(__name__)

STATION_STATUSES = ("active", "maintenance", "offline")


def _serialize_station(s: Station, tickets_this_month: int = 0) -> dict:
    return {
        "_id": str(s.id),
        "stationId": s.station_code,
        "name": s.name,
        "location": s.location,
        "region": s.region,
        "status": s.status,
        "performanceScore": s.performance_score or 0,
        "ticketsThisMonth": tickets_this_month,
        "createdAt": isoformat(s.created_at),
        "updatedAt": isoformat(s.updated_at),
    }


def _tickets_this_month(db: Session) -> Counter:
    start, end = month_bounds(utcnow())
    counts: Counter = Counter()
    for station, created_at in db.query(Ticket.station, Ticket.created_at).all():
        if created_at is not None and start <= ensure_utc(created_at) < end:
            counts[station] += 1
    return counts


def _get_station(station_id: uuid.UUID, db: Session) -> Station:
    s = db.query(Station).filter(Station.id == station_id).first()
    if not s:
        raise HTTPException(status_code=404, detail="Station not found")
    return s


def _check_status(status):
    if status is not None and status not in STATION_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")


@router.get("")
def list_stations(db: Session = Depends(get_db), _=Depends(require_page_permission("stations", "view"))):
    rows = db.query(Station).order_by(Station.name.asc()).all()
    counts = _tickets_this_month(db)
    return {"stations": [_serialize_station(s, counts[s.name]) for s in rows], "count": len(rows)}


@router.post("", status_code=201)
def create_station(
    body: StationCreate,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("stations", "add")),
):
    if not body.name or not body.location or not body.region:
        raise HTTPException(status_code=400, detail="Name, location, and region are required")
    _check_status(body.status)
    if db.query(Station).filter(Station.name == body.name).first():
        raise HTTPException(status_code=400, detail="A station with this name already exists")
    s = Station(
        station_code=next_code(db, Station, Station.station_code, "ST"),
        name=body.name,
        location=body.location,
        region=body.region,
        status=body.status or "active",
        performance_score=body.performance_score or 0,
    )
    db.add(s)
    db.commit()
    db.refresh(s)
    logger.info("station_created", station=s.name, code=s.station_code, by=me.email)
    return {"success": True, "station": _serialize_station(s)}


@router.get("/{station_id}")
def get_station(station_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(require_page_permission("stations", "view"))):
    s = _get_station(station_id, db)
    return {"station": _serialize_station(s, _tickets_this_month(db)[s.name])}


@router.patch("/{station_id}")
def update_station(
    station_id: uuid.UUID,
    body: StationUpdate,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("stations", "edit")),
):
    s = _get_station(station_id, db)
    _check_status(body.status)
    if body.name and body.name != s.name:
        if db.query(Station).filter(Station.name == body.name, Station.id != s.id).first():
            raise HTTPException(status_code=400, detail="A station with this name already exists")
        s.name = body.name
    for attr in ("location", "region", "status"):
        value = getattr(body, attr)
        if value:
            setattr(s, attr, value)
    if body.performance_score is not None:
        s.performance_score = body.performance_score
    db.commit()
    db.refresh(s)
    logger.info("station_updated", station=s.name, by=me.email)
    return {"success": True, "station": _serialize_station(s, _tickets_this_month(db)[s.name])}


@router.delete("/{station_id}")
def delete_station(
    station_id: uuid.UUID,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("stations", "delete")),
):
    s = _get_station(station_id, db)
    db.delete(s)
    db.commit()
    logger.info("station_deleted", station=s.name, by=me.email)
    return {"success": True, "message": "Station deleted successfully"}
