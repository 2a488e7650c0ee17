import uuid
from datetime import date
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth.security import require_page_permission
from ..db import get_db
from ..models.models import Equipment, EquipmentBatch, User
from ..schemas.equipment import EquipmentAttach, EquipmentBulkCreate, EquipmentCreate, EquipmentUpdate
from ..services import equipment_lifecycle as eq
from ..services.sequences import next_codes
from ..services.time_rules import isoformat, parse_date


router = APIRouter(prefix="/api/equipment", tags=["equipment"])
logger = structlog.get_logger(__name__)


def _serialize_equipment(e: Equipment) -> dict:
    return {
        "_id": str(e.id),
        "equipmentId": e.equipment_id,
        "name": e.name,
        "model": e.model,
        "serialNumber": e.serial_number,
        "status": e.status,
        "cost": e.cost or 0,
        "warranty": e.warranty,
        "station": e.station,
        "client": e.client_name,
        "clientName": e.client_name,
        "clientNumber": e.client_number,
        "installDate": isoformat(e.install_date),
        "lastService": isoformat(e.last_service),
        "installationType": e.installation_type,
        "replacedEquipmentId": e.replaced_equipment_id,
        "boughtDate": isoformat(e.bought_date),
        "batchId": str(e.batch_id) if e.batch_id else None,
        "createdAt": isoformat(e.created_at),
        "updatedAt": isoformat(e.updated_at),
    }


def _get_equipment(equipment_id: uuid.UUID, db: Session) -> Equipment:
    row = db.query(Equipment).filter(Equipment.id == equipment_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Equipment not found")
    return row


def _parse_date_field(value: Optional[str], label: str) -> Optional[date]:
    try:
        return parse_date(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


def _check_status(status: Optional[str]) -> None:
    if status is not None and status not in {s.value for s in eq.EquipmentStatus}:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")


def _serial_taken(db: Session, serial: str, exclude_id: Optional[uuid.UUID] = None) -> bool:
    q = db.query(Equipment.id).filter(Equipment.serial_number == serial)
    if exclude_id is not None:
        q = q.filter(Equipment.id != exclude_id)
    return q.first() is not None


@router.get("")
def list_equipment(
    status: Optional[str] = None,
    station: Optional[str] = None,
    batchId: Optional[uuid.UUID] = None,
    search: Optional[str] = None,
    tab: Optional[str] = None,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("equipment", "view")),
):
    q = db.query(Equipment)
    if status:
        q = q.filter(Equipment.status == status)
    if station:
        q = q.filter(Equipment.station == station)
    if batchId:
        q = q.filter(Equipment.batch_id == batchId)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            Equipment.equipment_id.ilike(like),
            Equipment.name.ilike(like),
            Equipment.model.ilike(like),
            Equipment.serial_number.ilike(like),
            Equipment.client_name.ilike(like),
        ))
    rows = eq.filter_by_tab(q.order_by(Equipment.created_at.desc()).all(), tab)
    return {"equipment": [_serialize_equipment(r) for r in rows]}


@router.get("/stats")
def equipment_stats(db: Session = Depends(get_db), _=Depends(require_page_permission("equipment", "view"))):
    return eq.usage_stats(db.query(Equipment).all(), date.today())


@router.post("", status_code=201)
def create_equipment(
    body: EquipmentCreate,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("equipment", "add")),
):
    if not body.name or not body.model or not body.serial_number:
        raise HTTPException(status_code=400, detail="Name, model, and serial number are required")
    _check_status(body.status)
    try:
        [serial] = eq.validate_identifiers([body.serial_number])
    except eq.IdentifierValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    serial = eq.format_mac(serial)
    if _serial_taken(db, serial):
        raise HTTPException(status_code=400, detail="Equipment with this serial number already exists")

    status = body.status or eq.EquipmentStatus.bought.value
    bought_date = _parse_date_field(body.bought_date, "boughtDate")
    if bought_date is None and status == eq.EquipmentStatus.bought.value:
        bought_date = date.today()

    [code] = next_codes(db, Equipment, Equipment.equipment_id, "EQ")
    row = Equipment(
        equipment_id=code,
        name=body.name,
        model=body.model,
        serial_number=serial,
        status=status,
        cost=body.cost or 0,
        warranty=body.warranty,
        station=body.station,
        client_name=body.client_name or body.client,
        client_number=body.client_number,
        install_date=_parse_date_field(body.install_date, "installDate"),
        last_service=_parse_date_field(body.last_service, "lastService"),
        installation_type=body.installation_type or eq.InstallationType.new_installation.value,
        replaced_equipment_id=body.replaced_equipment_id,
        bought_date=bought_date,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("equipment_created", equipment_id=code, serial=serial, by=me.email)
    return {"success": True, "equipment": _serialize_equipment(row)}


@router.post("/bulk", status_code=201)
def create_equipment_bulk(
    body: EquipmentBulkCreate,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("equipment", "add")),
):
    """One item per serial; nothing is written unless every serial is valid and unused."""
    name = (body.name or "").strip()
    model = (body.model or "").strip()
    if not name or not model:
        raise HTTPException(status_code=400, detail="Name and model are required")
    _check_status(body.status)
    try:
        serials = [eq.format_mac(s) for s in eq.validate_identifiers(body.serial_numbers)]
    except eq.IdentifierValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    duplicates = sorted({s for s in serials if serials.count(s) > 1})
    if duplicates:
        raise HTTPException(status_code=400, detail=f"Duplicate serial numbers in request: {', '.join(duplicates)}")
    existing = [s for (s,) in db.query(Equipment.serial_number).filter(Equipment.serial_number.in_(serials)).all()]
    if existing:
        raise HTTPException(
            status_code=400,
            detail=f"Equipment with these serial numbers already exists: {', '.join(sorted(existing))}",
        )

    status = body.status or eq.EquipmentStatus.bought.value
    bought_date = _parse_date_field(body.bought_date, "boughtDate") or date.today()
    codes = next_codes(db, Equipment, Equipment.equipment_id, "EQ", len(serials))
    rows = [
        Equipment(
            equipment_id=code,
            name=name,
            model=model,
            serial_number=serial,
            status=status,
            cost=body.cost or 0,
            warranty=body.warranty,
            bought_date=bought_date,
        )
        for code, serial in zip(codes, serials)
    ]
    db.add_all(rows)
    db.commit()
    logger.info("equipment_bulk_created", count=len(rows), name=name, model=model, by=me.email)
    return {"success": True, "count": len(rows), "equipment": [_serialize_equipment(r) for r in rows]}


@router.get("/{equipment_id}")
def get_equipment(
    equipment_id: uuid.UUID,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("equipment", "view")),
):
    return {"equipment": _serialize_equipment(_get_equipment(equipment_id, db))}


@router.patch("/{equipment_id}")
def update_equipment(
    equipment_id: uuid.UUID,
    body: EquipmentUpdate,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("equipment", "edit")),
):
    row = _get_equipment(equipment_id, db)
    fields = body.model_fields_set
    _check_status(body.status)

    if body.serial_number:
        if not eq.is_valid_identifier(body.serial_number):
            raise HTTPException(status_code=400, detail=str(eq.IdentifierValidationError([body.serial_number])))
        serial = eq.format_mac(body.serial_number)
        if _serial_taken(db, serial, exclude_id=row.id):
            raise HTTPException(status_code=400, detail="Equipment with this serial number already exists")
        row.serial_number = serial
    if body.name:
        row.name = body.name
    if body.model:
        row.model = body.model
    if body.status:
        if body.status == eq.EquipmentStatus.installed.value and row.status != body.status:
            raise HTTPException(status_code=400, detail="Use the attach action to install equipment for a client")
        row.status = body.status
    if "cost" in fields:
        row.cost = body.cost or 0
    for attr in ("warranty", "station", "client_number", "replaced_equipment_id"):
        if attr in fields:
            setattr(row, attr, getattr(body, attr))
    if fields & {"client_name", "client"}:
        row.client_name = body.client_name or body.client
    for attr, label in (("install_date", "installDate"), ("last_service", "lastService"), ("bought_date", "boughtDate")):
        if attr in fields:
            setattr(row, attr, _parse_date_field(getattr(body, attr), label))
    if "installation_type" in fields:
        row.installation_type = body.installation_type or eq.InstallationType.new_installation.value
    if "batch_id" in fields:
        if body.batch_id is not None and not db.query(EquipmentBatch).filter(EquipmentBatch.id == body.batch_id).first():
            raise HTTPException(status_code=404, detail="Batch not found")
        row.batch_id = body.batch_id

    db.commit()
    db.refresh(row)
    logger.info("equipment_updated", equipment_id=row.equipment_id, fields=sorted(fields), by=me.email)
    return {"success": True, "equipment": _serialize_equipment(row)}


@router.post("/{equipment_id}/attach")
def attach_equipment(
    equipment_id: uuid.UUID,
    body: EquipmentAttach,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("equipment", "edit")),
):
    row = _get_equipment(equipment_id, db)
    try:
        changes = eq.attach_to_client(
            row.status,
            client_name=body.client_name,
            client_number=body.client_number,
            station=body.station,
            install_date=_parse_date_field(body.install_date, "installDate"),
            installation_type=body.installation_type or eq.InstallationType.new_installation.value,
            replaced_equipment_id=body.replaced_equipment_id,
            today=date.today(),
        )
    except eq.InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))
    for attr, value in changes.items():
        setattr(row, attr, value)
    db.commit()
    db.refresh(row)
    logger.info("equipment_attached", equipment_id=row.equipment_id, client=row.client_name, by=me.email)
    return {"success": True, "equipment": _serialize_equipment(row)}


@router.delete("/{equipment_id}")
def delete_equipment(
    equipment_id: uuid.UUID,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("equipment", "delete")),
):
    row = _get_equipment(equipment_id, db)
    if eq.plan_deletion(row.batch_id) is eq.DeletionPlan.return_to_batch:
        for attr, value in eq.RETURN_TO_BATCH_CHANGES.items():
            setattr(row, attr, value)
        db.commit()
        logger.info("equipment_returned_to_batch", equipment_id=row.equipment_id, batch_id=str(row.batch_id), by=me.email)
        return {"success": True, "message": "Equipment returned to batch successfully"}
    db.delete(row)
    db.commit()
    logger.info("equipment_deleted", equipment_id=row.equipment_id, by=me.email)
    return {"success": True, "message": "Equipment deleted successfully"}
