import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth.security import require_page_permission
from ..db import get_db
from ..models.models import EquipmentTemplate
from ..schemas.equipment import TemplateCreate
from ..services.time_rules import isoformat


router = APIRouter(prefix="/api/equipment-templates", tags=["equipment"])
logger = structlog.get_logger(__name__)


def _template_to_dict(t: EquipmentTemplate) -> dict:
    return {"_id": str(t.id), "name": t.name, "model": t.model, "createdAt": isoformat(t.created_at)}


@router.get("")
def list_templates(db: Session = Depends(get_db), _=Depends(require_page_permission("equipment", "view"))):
    rows = db.query(EquipmentTemplate).order_by(EquipmentTemplate.name.asc(), EquipmentTemplate.model.asc()).all()
    return {"templates": [_template_to_dict(t) for t in rows]}


@router.post("", status_code=201)
def create_template(
    body: TemplateCreate,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("equipment", "add")),
):
    name = (body.name or "").strip()
    model = (body.model or "").strip()
    if not name or not model:
        raise HTTPException(status_code=400, detail="Name and model are required")
    exists = (
        db.query(EquipmentTemplate)
        .filter(EquipmentTemplate.name == name, EquipmentTemplate.model == model)
        .first()
    )
    if exists:
        raise HTTPException(status_code=400, detail="A template with this name and model already exists")
    row = EquipmentTemplate(name=name, model=model)
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("equipment_template_created", name=name, model=model)
    return {"success": True, "template": _template_to_dict(row)}


@router.delete("/{template_id}")
def delete_template(
    template_id: uuid.UUID,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("equipment", "delete")),
):
    row = db.query(EquipmentTemplate).filter(EquipmentTemplate.id == template_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Template not found")
    db.delete(row)
    db.commit()
    return {"success": True, "message": "Template deleted successfully"}
