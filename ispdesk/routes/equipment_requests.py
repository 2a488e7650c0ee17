import math
import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth.security import require_page_permission
from ..db import get_db
from ..models.models import EquipmentRequest, User
from ..schemas.equipment import EquipmentRequestCreate, EquipmentRequestReview
from ..services.sequences import next_code
from ..services.time_rules import isoformat, utcnow


router = APIRouter(prefix="/api/equipment-requests", tags=["equipment-requests"])
logger = structlog.get_logger(__name__)

REQUEST_PRIORITIES = ("low", "medium", "high", "urgent")
REVIEW_STATUSES = ("accepted", "rejected")


def _serialize_request(r: EquipmentRequest) -> dict:
    data = {
        "_id": str(r.id),
        "requestId": r.request_id,
        "itemName": r.item_name,
        "itemType": r.item_type,
        "station": r.station,
        "quantity": r.quantity,
        "priority": r.priority,
        "reason": r.reason,
        "additionalNotes": r.additional_notes or "",
        "status": r.status,
        "requestedBy": {"email": r.requested_by_email, "name": r.requested_by_name},
        "createdAt": isoformat(r.created_at),
        "updatedAt": isoformat(r.updated_at),
    }
    if r.reviewed_at is not None:
        data["reviewedBy"] = {"email": r.reviewed_by_email, "name": r.reviewed_by_name}
        data["reviewedAt"] = isoformat(r.reviewed_at)
    if r.admin_notes:
        data["adminNotes"] = r.admin_notes
    return data


def _get_request(request_id: str, db: Session) -> EquipmentRequest:
    """Accept either the row id or the REQ-nnnn code."""
    r = None
    try:
        r = db.query(EquipmentRequest).filter(EquipmentRequest.id == uuid.UUID(request_id)).first()
    except ValueError:
        pass
    if r is None:
        r = db.query(EquipmentRequest).filter(EquipmentRequest.request_id == request_id.strip().upper()).first()
    if r is None:
        raise HTTPException(status_code=404, detail="Request not found")
    return r


@router.post("", status_code=201)
def create_request(
    body: EquipmentRequestCreate,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("equipment-requests", "add")),
):
    if not all((body.item_name, body.item_type, body.station, body.quantity, body.reason)):
        raise HTTPException(status_code=400, detail="Item name, type, station, quantity, and reason are required")
    if body.quantity < 1:
        raise HTTPException(status_code=400, detail="Quantity must be at least 1")
    priority = body.priority or "medium"
    if priority not in REQUEST_PRIORITIES:
        raise HTTPException(status_code=400, detail=f"Invalid priority: {priority}")

    r = EquipmentRequest(
        request_id=next_code(db, EquipmentRequest, EquipmentRequest.request_id, "REQ", width=4),
        item_name=body.item_name,
        item_type=body.item_type,
        station=body.station,
        quantity=body.quantity,
        priority=priority,
        reason=body.reason,
        additional_notes=body.additional_notes or "",
        status="pending",
        requested_by_email=me.email,
        requested_by_name=me.name or "Unknown User",
    )
    db.add(r)
    db.commit()
    db.refresh(r)
    logger.info(
        "equipment_request_created",
        request_id=r.request_id, station=r.station, item=r.item_name, quantity=r.quantity, by=me.email,
    )
    return {"success": True, "request": _serialize_request(r)}


@router.get("")
def list_requests(
    status: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("manage-requests", "view")),
):
    q = db.query(EquipmentRequest)
    if status and status != "all":
        q = q.filter(EquipmentRequest.status == status)
    total = q.count()
    rows = q.order_by(EquipmentRequest.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "requests": [_serialize_request(r) for r in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    }


@router.get("/mine")
def my_requests(
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("equipment-requests", "view")),
):
    rows = (
        db.query(EquipmentRequest)
        .filter(EquipmentRequest.requested_by_email == me.email)
        .order_by(EquipmentRequest.created_at.desc())
        .all()
    )
    return {"requests": [_serialize_request(r) for r in rows]}


@router.patch("/{request_id}")
def review_request(
    request_id: str,
    body: EquipmentRequestReview,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("manage-requests", "edit")),
):
    if body.status not in REVIEW_STATUSES:
        raise HTTPException(status_code=400, detail='Status must be either "accepted" or "rejected"')
    r = _get_request(request_id, db)
    r.status = body.status
    r.reviewed_by_email = me.email
    r.reviewed_by_name = me.name or "Unknown Admin"
    r.reviewed_at = utcnow()
    if body.admin_notes:
        r.admin_notes = body.admin_notes
    db.commit()
    db.refresh(r)
    logger.info("equipment_request_reviewed", request_id=r.request_id, status=r.status, by=me.email)
    return {"success": True, "message": f"Request {r.status} successfully", "request": _serialize_request(r)}
