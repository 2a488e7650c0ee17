import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth.security import require_page_permission, require_superadmin
from ..db import get_db
from ..models.models import Equipment, EquipmentBatch, User
from ..schemas.equipment import BatchCreate, BatchFromSelected
from ..services import equipment_lifecycle as eq
from ..services.sequences import next_code, next_codes
from ..services.time_rules import isoformat, parse_date
from .equipment import _serialize_equipment


router = APIRouter(prefix="/api/equipment-batches", tags=["equipment"])
logger = structlog.get_logger(__name__)


def _serialize_batch(b: EquipmentBatch) -> dict:
    return {
        "_id": str(b.id),
        "batchNumber": b.batch_number,
        "name": b.name,
        "description": b.description or "",
        "equipmentType": b.equipment_type,
        "quantity": b.quantity,
        "purchaseDate": isoformat(b.purchase_date),
        "purchaseCost": b.purchase_cost or 0,
        "supplier": b.supplier or "",
        "createdAt": isoformat(b.created_at),
        "updatedAt": isoformat(b.updated_at),
    }


def _installed_clients(items, detailed: bool = False) -> list:
    clients = []
    for e in items:
        if e.status != eq.EquipmentStatus.installed.value or not e.client_name:
            continue
        row = {
            "equipmentId": e.equipment_id,
            "client": e.client_name,
            "clientNumber": e.client_number,
            "installDate": isoformat(e.install_date),
        }
        if detailed:
            row["serialNumber"] = e.serial_number
            row["station"] = e.station
        clients.append(row)
    return clients


def _get_batch(batch_id: uuid.UUID, db: Session) -> EquipmentBatch:
    batch = db.query(EquipmentBatch).filter(EquipmentBatch.id == batch_id).first()
    if not batch:
        raise HTTPException(status_code=404, detail="Batch not found")
    return batch


def _required_purchase_date(value: Optional[str]):
    try:
        return parse_date(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid purchase date")


@router.get("")
def list_batches(
    tab: Optional[str] = None,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("equipment", "view")),
):
    if tab not in (None, "", "all", "active", "finished"):
        raise HTTPException(status_code=400, detail=f"Invalid tab: {tab}")
    batches = db.query(EquipmentBatch).order_by(EquipmentBatch.created_at.desc()).all()
    out = []
    for b in batches:
        stats = eq.batch_stats(e.status for e in b.equipment)
        if tab == "active" and stats["finished"]:
            continue
        if tab == "finished" and not stats["finished"]:
            continue
        out.append({**_serialize_batch(b), "stats": stats, "clients": _installed_clients(b.equipment)})
    return {"batches": out}


@router.get("/{batch_id}")
def get_batch(
    batch_id: uuid.UUID,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("equipment", "view")),
):
    b = _get_batch(batch_id, db)
    items = list(b.equipment)
    return {
        "batch": _serialize_batch(b),
        "equipment": [_serialize_equipment(e) for e in items],
        "stats": eq.batch_stats(e.status for e in items),
        "clients": _installed_clients(items, detailed=True),
    }


@router.post("", status_code=201)
def create_batch(
    body: BatchCreate,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("equipment", "add")),
):
    """
    Create a purchase batch together with its items.

    Items come either as `equipmentItems` (name, model, serial, cost each) or,
    from older clients, as bare `serialNumbers` that inherit the batch's
    equipment type and split the purchase cost evenly. Nothing is written
    if any serial is invalid or already in use.
    """
    name = (body.name or "").strip()
    purchase_date = _required_purchase_date(body.purchase_date)
    if not name or purchase_date is None:
        raise HTTPException(status_code=400, detail="Name and purchase date are required")

    if body.equipment_items:
        items = [
            {"name": i.name.strip(), "model": i.model.strip(), "serial": i.serial_number, "cost": i.cost or 0}
            for i in body.equipment_items
            if (i.serial_number or "").strip()
        ]
        equipment_type = eq.derive_equipment_type(i["name"] for i in items)
    else:
        serials = [s for s in (body.serial_numbers or []) if (s or "").strip()]
        equipment_type = (body.equipment_type or "").strip() or "Mixed Equipment"
        per_item = (body.purchase_cost or 0) / len(serials) if serials else 0
        items = [{"name": equipment_type, "model": equipment_type, "serial": s, "cost": per_item} for s in serials]

    serials = []
    if items:
        try:
            serials = [eq.format_mac(s) for s in eq.validate_identifiers(i["serial"] for i in items)]
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

    batch = EquipmentBatch(
        batch_number=next_code(db, EquipmentBatch, EquipmentBatch.batch_number, "BATCH"),
        name=name,
        description=(body.description or "").strip(),
        equipment_type=equipment_type,
        quantity=len(items) if items else (body.quantity or 0),
        purchase_date=purchase_date,
        purchase_cost=body.purchase_cost or 0,
        supplier=(body.supplier or "").strip(),
    )
    db.add(batch)
    codes = next_codes(db, Equipment, Equipment.equipment_id, "EQ", len(items)) if items else []
    for code, serial, item in zip(codes, serials, items):
        batch.equipment.append(Equipment(
            equipment_id=code,
            name=item["name"],
            model=item["model"],
            serial_number=serial,
            status=eq.EquipmentStatus.bought.value,
            cost=item["cost"],
            bought_date=purchase_date,
        ))
    db.commit()
    db.refresh(batch)
    logger.info("batch_created", batch_number=batch.batch_number, items=len(items), by=me.email)
    return {"success": True, "batch": _serialize_batch(batch)}


@router.post("/create-from-selected", status_code=201)
def create_batch_from_selected(
    body: BatchFromSelected,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("equipment", "add")),
):
    name = (body.name or "").strip()
    purchase_date = _required_purchase_date(body.purchase_date)
    if not name or purchase_date is None:
        raise HTTPException(status_code=400, detail="Name and purchase date are required")
    if not body.equipment_ids:
        raise HTTPException(status_code=400, detail="At least one equipment item must be selected")

    items = db.query(Equipment).filter(Equipment.id.in_(body.equipment_ids)).order_by(Equipment.created_at.asc()).all()
    if not items:
        raise HTTPException(status_code=400, detail="No valid equipment items found")
    if any(i.batch_id for i in items):
        raise HTTPException(status_code=400, detail="Some selected equipment items already belong to a batch")

    purchase_cost = body.purchase_cost if body.purchase_cost is not None else sum(i.cost or 0 for i in items)
    batch = EquipmentBatch(
        batch_number=next_code(db, EquipmentBatch, EquipmentBatch.batch_number, "BATCH"),
        name=name,
        description=(body.description or "").strip(),
        equipment_type=eq.derive_equipment_type(i.name for i in items),
        quantity=len(items),
        purchase_date=purchase_date,
        purchase_cost=purchase_cost,
        supplier=(body.supplier or "").strip(),
    )
    db.add(batch)
    batch.equipment.extend(items)
    db.commit()
    db.refresh(batch)
    logger.info("batch_created_from_selected", batch_number=batch.batch_number, items=len(items), by=me.email)
    return {"success": True, "batch": _serialize_batch(batch)}


@router.delete("/{batch_id}")
def delete_batch(batch_id: uuid.UUID, db: Session = Depends(get_db), me: User = Depends(require_superadmin())):
    batch = _get_batch(batch_id, db)
    count = len(batch.equipment)
    db.delete(batch)
    db.commit()
    logger.info("batch_deleted", batch_number=batch.batch_number, equipment=count, by=me.email)
    return {
        "success": True,
        "message": f"Batch deleted successfully. {count} equipment item(s) were also deleted.",
        "deletedEquipmentCount": count,
    }
