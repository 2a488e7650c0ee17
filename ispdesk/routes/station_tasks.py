import uuid
from typing import Iterable, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth.security import require_page_permission
from ..db import get_db
from ..models.models import StationTask, Technician, User
from ..schemas.stations import StationTaskCreate, StationTaskUpdate
from ..services.time_rules import isoformat, utcnow


router = APIRouter(prefix="/api/station-tasks", tags=["station-tasks"])
logger = structlog.get_logger(__name__)

TASK_STATUSES = ("pending", "done")


def _serialize_task(t: StationTask) -> dict:
    return {
        "_id": str(t.id),
        "title": t.title,
        "stationId": t.station_id,
        "stationName": t.station_name,
        "description": t.description or "",
        "status": t.status,
        "technicians": t.technicians or [],
        "createdBy": t.created_by,
        "createdAt": isoformat(t.created_at),
        "updatedAt": isoformat(t.updated_at),
        "completedAt": isoformat(t.completed_at),
    }


def _resolve_technicians(db: Session, technician_ids: Optional[Iterable[str]]) -> List[dict]:
    """Snapshot name and phone of each known technician; unknown ids are dropped."""
    ids = []
    for raw in technician_ids or []:
        try:
            ids.append(uuid.UUID(str(raw)))
        except ValueError:
            continue
    if not ids:
        return []
    by_id = {t.id: t for t in db.query(Technician).filter(Technician.id.in_(ids)).all()}
    return [
        {"technicianId": str(i), "name": by_id[i].name, "phone": by_id[i].phone or ""}
        for i in ids
        if i in by_id
    ]


def _get_task(task_id: uuid.UUID, db: Session) -> StationTask:
    t = db.query(StationTask).filter(StationTask.id == task_id).first()
    if not t:
        raise HTTPException(status_code=404, detail="Station task not found")
    return t


@router.get("")
def list_tasks(
    station_id: Optional[str] = Query(default=None, alias="stationId"),
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("station-tasks", "view")),
):
    q = db.query(StationTask)
    if station_id:
        q = q.filter(StationTask.station_id == station_id)
    return {"tasks": [_serialize_task(t) for t in q.order_by(StationTask.created_at.desc()).all()]}


@router.post("", status_code=201)
def create_task(
    body: StationTaskCreate,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("station-tasks", "add")),
):
    if not body.title or not body.station_id or not body.station_name:
        raise HTTPException(status_code=400, detail="Title, station ID, and station name are required")
    t = StationTask(
        title=body.title,
        station_id=body.station_id,
        station_name=body.station_name,
        description=body.description or "",
        status="pending",
        technicians=_resolve_technicians(db, body.technician_ids),
        created_by=me.email,
    )
    db.add(t)
    db.commit()
    db.refresh(t)
    logger.info("station_task_created", station=t.station_name, technicians=len(t.technicians), by=me.email)
    return {"success": True, "task": _serialize_task(t)}


@router.patch("/{task_id}")
def update_task(
    task_id: uuid.UUID,
    body: StationTaskUpdate,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("station-tasks", "edit")),
):
    t = _get_task(task_id, db)
    fields = body.model_fields_set
    if body.title:
        t.title = body.title
    if "description" in fields:
        t.description = body.description or ""
    if "technician_ids" in fields:
        t.technicians = _resolve_technicians(db, body.technician_ids)
    if body.status:
        if body.status not in TASK_STATUSES:
            raise HTTPException(status_code=400, detail=f"Invalid status: {body.status}")
        t.status = body.status
        t.completed_at = utcnow() if body.status == "done" else None
    db.commit()
    db.refresh(t)
    logger.info("station_task_updated", task_id=str(t.id), status=t.status, by=me.email)
    return {"success": True, "task": _serialize_task(t)}


@router.delete("/{task_id}")
def delete_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("station-tasks", "delete")),
):
    t = _get_task(task_id, db)
    db.delete(t)
    db.commit()
    logger.info("station_task_deleted", task_id=str(task_id), by=me.email)
    return {"success": True, "message": "Station task deleted successfully"}
