import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth.security import require_approved, require_page_permission
from ..db import get_db
from ..models.models import Technician, TicketCategory
from ..schemas.tickets import TechnicianCreate, TicketCategoryBody
from ..services.time_rules import isoformat


router = APIRouter(prefix="/api/technicians", tags=["tickets"])
categories_router = APIRouter(prefix="/api/categories", tags=["tickets"])
logger = structlog.get_logger(__name__)


def _technician_to_dict(t: Technician) -> dict:
    return {"_id": str(t.id), "name": t.name, "phone": t.phone or "", "createdAt": isoformat(t.created_at)}


def _category_to_dict(c: TicketCategory) -> dict:
    return {"_id": str(c.id), "name": c.name, "price": c.price or 0, "createdAt": isoformat(c.created_at)}


@router.get("")
def list_technicians(db: Session = Depends(get_db), _=Depends(require_approved)):
    rows = db.query(Technician).order_by(Technician.name.asc()).all()
    return {"technicians": [_technician_to_dict(t) for t in rows]}


@router.post("", status_code=201)
def create_technician(
    body: TechnicianCreate,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("tickets", "add")),
):
    if not body.name:
        raise HTTPException(status_code=400, detail="Technician name is required")
    if db.query(Technician).filter(Technician.name == body.name).first():
        raise HTTPException(status_code=400, detail="Technician already exists")
    row = Technician(name=body.name, phone=body.phone)
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("technician_created", name=row.name)
    return {"success": True, "technician": _technician_to_dict(row)}


@router.delete("/{technician_id}")
def delete_technician(
    technician_id: uuid.UUID,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("tickets", "delete")),
):
    row = db.query(Technician).filter(Technician.id == technician_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Technician not found")
    db.delete(row)
    db.commit()
    return {"success": True, "message": "Technician deleted successfully"}


@categories_router.get("")
def list_categories(db: Session = Depends(get_db), _=Depends(require_approved)):
    rows = db.query(TicketCategory).order_by(TicketCategory.name.asc()).all()
    return {"categories": [_category_to_dict(c) for c in rows]}


@categories_router.post("", status_code=201)
def create_category(
    body: TicketCategoryBody,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("tickets", "add")),
):
    if not body.name:
        raise HTTPException(status_code=400, detail="Category name is required")
    if body.price is not None and body.price < 0:
        raise HTTPException(status_code=400, detail="Price cannot be negative")
    if db.query(TicketCategory).filter(TicketCategory.name == body.name).first():
        raise HTTPException(status_code=400, detail="Category already exists")
    row = TicketCategory(name=body.name, price=body.price or 0)
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("ticket_category_created", name=row.name, price=row.price)
    return {"success": True, "category": _category_to_dict(row)}


@categories_router.patch("/{category_id}")
def update_category(
    category_id: uuid.UUID,
    body: TicketCategoryBody,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("tickets", "edit")),
):
    row = db.query(TicketCategory).filter(TicketCategory.id == category_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Category not found")
    fields = body.model_fields_set
    if "name" in fields:
        if not body.name:
            raise HTTPException(status_code=400, detail="Category name is required")
        clash = (
            db.query(TicketCategory)
            .filter(TicketCategory.name == body.name, TicketCategory.id != row.id)
            .first()
        )
        if clash:
            raise HTTPException(status_code=400, detail="Category already exists")
        row.name = body.name
    if "price" in fields:
        if body.price is None or body.price < 0:
            raise HTTPException(status_code=400, detail="Price cannot be negative")
        row.price = body.price
    db.commit()
    db.refresh(row)
    logger.info("ticket_category_updated", name=row.name, price=row.price)
    return {"success": True, "category": _category_to_dict(row)}


@categories_router.delete("/{category_id}")
def delete_category(
    category_id: uuid.UUID,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("tickets", "delete")),
):
    row = db.query(TicketCategory).filter(TicketCategory.id == category_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Category not found")
    db.delete(row)
    db.commit()
    return {"success": True, "message": "Category deleted successfully"}
