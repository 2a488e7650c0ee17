import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth.security import require_superadmin
from ..db import get_db
from ..models.models import InternetConnection, Station, User
from ..schemas.connections import ConnectionCreate, ConnectionUpdate, PaymentMark
from ..services import connection_lifecycle as lifecycle
from ..services.normalization import (
    CredentialValidationError,
    carry_payment_logs,
    normalize_starlink_emails,
    normalize_vpn_ips,
    record_payment,
    validate_credentials,
)
from ..services.time_rules import isoformat, parse_datetime, utcnow


router = APIRouter(prefix="/api/internet-connections", tags=["internet-connections"])
logger = structlog.get_logger(__name__)


def _serialize_connection(conn: InternetConnection, now=None) -> dict:
    now = now or utcnow()
    return {
        "_id": str(conn.id),
        "station": conn.station,
        "starlinkEmails": normalize_starlink_emails(conn.starlink_emails),
        "vpnIps": normalize_vpn_ips(conn.vpn_ips),
        "scheduledForDeletion": isoformat(conn.scheduled_for_deletion),
        "isPendingDeletion": lifecycle.is_pending_deletion(conn.scheduled_for_deletion, now),
        "timeRemaining": lifecycle.format_time_remaining(conn.scheduled_for_deletion, now),
        "createdAt": isoformat(conn.created_at),
        "updatedAt": isoformat(conn.updated_at),
    }


def _get_connection(connection_id: uuid.UUID, db: Session) -> InternetConnection:
    conn = db.query(InternetConnection).filter(InternetConnection.id == connection_id).first()
    if not conn:
        raise HTTPException(status_code=404, detail="Internet connection not found")
    return conn


@router.get("")
def list_connections(db: Session = Depends(get_db), _=Depends(require_superadmin())):
    rows = db.query(InternetConnection).order_by(InternetConnection.station.asc()).all()
    now = utcnow()
    stations = [name for (name,) in db.query(Station.name).order_by(Station.name.asc()).all()]
    return {
        "connections": [_serialize_connection(r, now) for r in rows],
        "stations": stations,
        "count": len(rows),
    }


@router.post("", status_code=201)
def create_connection(body: ConnectionCreate, db: Session = Depends(get_db), me: User = Depends(require_superadmin())):
    station = (body.station or "").strip()
    if not station:
        raise HTTPException(status_code=400, detail="Station is required")
    emails = normalize_starlink_emails(body.starlink_emails, body.starlink_email)
    ips = normalize_vpn_ips(body.vpn_ips, body.vpn_ip)
    try:
        validate_credentials(emails, ips)
    except CredentialValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if db.query(InternetConnection).filter(InternetConnection.station == station).first():
        raise HTTPException(
            status_code=400,
            detail="Internet connection already exists for this station. Please update the existing one.",
        )
    conn = InternetConnection(station=station, starlink_emails=emails, vpn_ips=ips)
    db.add(conn)
    db.commit()
    db.refresh(conn)
    logger.info("connection_created", station=station, emails=len(emails), ips=len(ips), by=me.email)
    return {"success": True, "connection": _serialize_connection(conn)}


@router.post("/cleanup")
def cleanup_connections(db: Session = Depends(get_db), _=Depends(require_superadmin())):
    deleted = lifecycle.sweep_expired(db)
    if deleted == 0:
        return {"success": True, "message": "No connections scheduled for deletion", "deletedCount": 0}
    return {"success": True, "message": f"Deleted {deleted} connection(s)", "deletedCount": deleted}


@router.get("/{connection_id}")
def get_connection(connection_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(require_superadmin())):
    return {"connection": _serialize_connection(_get_connection(connection_id, db))}


@router.patch("/{connection_id}")
def update_connection(
    connection_id: uuid.UUID,
    body: ConnectionUpdate,
    db: Session = Depends(get_db),
    me: User = Depends(require_superadmin()),
):
    conn = _get_connection(connection_id, db)
    fields = body.model_fields_set

    if "station" in fields and body.station is not None and body.station.strip() != conn.station:
        raise HTTPException(status_code=400, detail="Station cannot be changed after creation")

    if "scheduled_for_deletion" in fields:
        if body.scheduled_for_deletion is None:
            conn.scheduled_for_deletion = None
            logger.info("connection_deletion_cancelled", station=conn.station, by=me.email)
        else:
            try:
                conn.scheduled_for_deletion = parse_datetime(body.scheduled_for_deletion)
            except ValueError:
                raise HTTPException(status_code=400, detail="Invalid scheduledForDeletion timestamp")
            logger.info("connection_deletion_scheduled", station=conn.station, at=isoformat(conn.scheduled_for_deletion), by=me.email)

    if fields & {"starlink_emails", "vpn_ips"}:
        emails = conn.starlink_emails or []
        ips = conn.vpn_ips or []
        if "starlink_emails" in fields:
            emails = carry_payment_logs(normalize_starlink_emails(body.starlink_emails), conn.starlink_emails)
        if "vpn_ips" in fields:
            ips = normalize_vpn_ips(body.vpn_ips)
        try:
            validate_credentials(emails, ips)
        except CredentialValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        conn.starlink_emails = emails
        conn.vpn_ips = ips

    db.commit()
    db.refresh(conn)
    return {"success": True, "connection": _serialize_connection(conn)}


@router.post("/{connection_id}/schedule-deletion")
def schedule_deletion(connection_id: uuid.UUID, db: Session = Depends(get_db), me: User = Depends(require_superadmin())):
    conn = _get_connection(connection_id, db)
    try:
        conn.scheduled_for_deletion = lifecycle.schedule_deletion(conn.scheduled_for_deletion, utcnow())
    except lifecycle.InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    db.refresh(conn)
    logger.info("connection_deletion_scheduled", station=conn.station, at=isoformat(conn.scheduled_for_deletion), by=me.email)
    return {"success": True, "connection": _serialize_connection(conn)}


@router.post("/{connection_id}/cancel-deletion")
def cancel_deletion(connection_id: uuid.UUID, db: Session = Depends(get_db), me: User = Depends(require_superadmin())):
    conn = _get_connection(connection_id, db)
    try:
        conn.scheduled_for_deletion = lifecycle.cancel_deletion(conn.scheduled_for_deletion, utcnow())
    except lifecycle.InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    db.refresh(conn)
    logger.info("connection_deletion_cancelled", station=conn.station, by=me.email)
    return {"success": True, "connection": _serialize_connection(conn)}


@router.post("/{connection_id}/mark-payment")
def mark_payment(
    connection_id: uuid.UUID,
    body: PaymentMark,
    db: Session = Depends(get_db),
    me: User = Depends(require_superadmin()),
):
    if not body.email or body.month is None or body.year is None:
        raise HTTPException(status_code=400, detail="Email, month, and year are required")
    conn = _get_connection(connection_id, db)
    try:
        paid_at = parse_datetime(body.payment_date) or utcnow()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid paymentDate")
    try:
        conn.starlink_emails = record_payment(
            normalize_starlink_emails(conn.starlink_emails), body.email, body.month, body.year, isoformat(paid_at)
        )
    except KeyError:
        raise HTTPException(status_code=404, detail="Starlink email not found in this connection")
    db.commit()
    db.refresh(conn)
    logger.info("starlink_payment_marked", station=conn.station, email=body.email, month=body.month, year=body.year)
    return {"success": True, "connection": _serialize_connection(conn)}


@router.delete("/{connection_id}")
def delete_connection(connection_id: uuid.UUID, db: Session = Depends(get_db), me: User = Depends(require_superadmin())):
    conn = _get_connection(connection_id, db)
    if not lifecycle.can_delete_now(conn.scheduled_for_deletion, utcnow()):
        raise HTTPException(
            status_code=400,
            detail="Connection must be scheduled for deletion first. Deletion will occur 72 hours after scheduling.",
        )
    db.delete(conn)
    db.commit()
    logger.info("connection_deleted", station=conn.station, by=me.email)
    return {"success": True, "message": "Internet connection deleted successfully"}
