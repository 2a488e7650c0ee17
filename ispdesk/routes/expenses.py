import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth.security import require_page_permission
from ..db import get_db
from ..models.models import Expense, ExpenseCategory, User
from ..schemas.expenses import ExpenseCreate, ExpenseUpdate
from ..schemas.tickets import NamedCreate
from ..services.expense_export import EXPENSE_STATUSES, ExportFilterError, ExportFilters, export_expenses_csv
from ..services.sequences import next_code
from ..services.time_rules import isoformat, parse_date


router = APIRouter(prefix="/api/expenses", tags=["expenses"])
categories_router = APIRouter(prefix="/api/expense-categories", tags=["expenses"])
logger = structlog.get_logger(__name__)

DEFAULT_EXPENSE_CATEGORIES = ("Equipment", "Maintenance", "Supplies", "Labor")


def _serialize_expense(e: Expense) -> dict:
    return {
        "id": e.expense_id,
        "_id": str(e.id),
        "description": e.description,
        "category": e.category,
        "station": e.station,
        "amount": e.amount,
        "balance": e.balance,
        "date": e.expense_date.isoformat(),
        "status": e.status,
        "createdAt": isoformat(e.created_at),
        "updatedAt": isoformat(e.updated_at),
    }


def _get_expense(expense_id: str, db: Session) -> Expense:
    e = db.query(Expense).filter(Expense.expense_id == expense_id.strip().upper()).first()
    if not e:
        raise HTTPException(status_code=404, detail="Expense not found")
    return e


def _check_status(status: Optional[str]) -> str:
    status = status or "partially-paid"
    if status not in EXPENSE_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
    return status


def _expense_date(value: Optional[str]):
    try:
        return parse_date(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Date must be in YYYY-MM-DD format")


@router.get("")
def list_expenses(db: Session = Depends(get_db), _=Depends(require_page_permission("expenses", "view"))):
    rows = db.query(Expense).order_by(Expense.expense_date.desc(), Expense.created_at.desc()).all()
    return {"expenses": [_serialize_expense(e) for e in rows]}


@router.get("/export")
def export_expenses(
    status: Optional[str] = None,
    date_from: Optional[str] = Query(default=None, alias="dateFrom"),
    date_to: Optional[str] = Query(default=None, alias="dateTo"),
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("expenses", "view")),
):
    try:
        filters = ExportFilters.from_query(status, date_from, date_to, month)
    except ExportFilterError as e:
        raise HTTPException(status_code=400, detail=str(e))
    rows = db.query(Expense).order_by(Expense.expense_date.desc(), Expense.created_at.desc()).all()
    filename, content = export_expenses_csv(rows, filters)
    logger.info("expenses_exported", filename=filename, by=me.email)
    return Response(
        content=content,
        media_type="text/csv;charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{expense_id}")
def get_expense(expense_id: str, db: Session = Depends(get_db), _=Depends(require_page_permission("expenses", "view"))):
    return {"expense": _serialize_expense(_get_expense(expense_id, db))}


@router.post("", status_code=201)
def create_expense(
    body: ExpenseCreate,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("expenses", "add")),
):
    if not body.description or not body.category or body.amount is None or not body.date:
        raise HTTPException(status_code=400, detail="Description, category, amount, and date are required")
    status = _check_status(body.status)
    e = Expense(
        expense_id=next_code(db, Expense, Expense.expense_id, "EXP"),
        description=body.description,
        category=body.category,
        station=body.station or None,
        amount=body.amount,
        balance=body.balance if status == "partially-paid" else None,
        expense_date=_expense_date(body.date),
        status=status,
    )
    db.add(e)
    db.commit()
    db.refresh(e)
    logger.info("expense_created", expense_id=e.expense_id, amount=e.amount, by=me.email)
    return {"success": True, "expense": _serialize_expense(e)}


@router.put("/{expense_id}")
def update_expense(
    expense_id: str,
    body: ExpenseUpdate,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("expenses", "edit")),
):
    e = _get_expense(expense_id, db)
    fields = body.model_fields_set
    if body.description:
        e.description = body.description
    if body.category:
        e.category = body.category
    if "station" in fields:
        e.station = body.station or None
    if body.amount is not None:
        e.amount = body.amount
    if body.date:
        e.expense_date = _expense_date(body.date)
    if body.status:
        e.status = _check_status(body.status)
    if "balance" in fields:
        e.balance = body.balance
    if e.status != "partially-paid":
        e.balance = None
    db.commit()
    db.refresh(e)
    logger.info("expense_updated", expense_id=e.expense_id, fields=sorted(fields), by=me.email)
    return {"success": True, "expense": _serialize_expense(e)}


@router.delete("/{expense_id}")
def delete_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    me: User = Depends(require_page_permission("expenses", "delete")),
):
    e = _get_expense(expense_id, db)
    db.delete(e)
    db.commit()
    logger.info("expense_deleted", expense_id=e.expense_id, by=me.email)
    return {"success": True, "message": "Expense deleted successfully"}


def _category_to_dict(c: ExpenseCategory) -> dict:
    return {"_id": str(c.id), "name": c.name, "createdAt": isoformat(c.created_at)}


@categories_router.get("")
def list_expense_categories(db: Session = Depends(get_db), _=Depends(require_page_permission("expenses", "view"))):
    rows = db.query(ExpenseCategory).order_by(ExpenseCategory.name.asc()).all()
    return {"categories": [_category_to_dict(c) for c in rows]}


@categories_router.post("/seed")
def seed_expense_categories(db: Session = Depends(get_db), _=Depends(require_page_permission("expenses", "add"))):
    existing = {name for (name,) in db.query(ExpenseCategory.name).all()}
    created = [ExpenseCategory(name=n) for n in DEFAULT_EXPENSE_CATEGORIES if n not in existing]
    db.add_all(created)
    db.commit()
    if created:
        logger.info("expense_categories_seeded", count=len(created))
    return {"success": True, "created": len(created)}


@categories_router.post("", status_code=201)
def create_expense_category(
    body: NamedCreate,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("expenses", "add")),
):
    if not body.name:
        raise HTTPException(status_code=400, detail="Category name is required")
    if db.query(ExpenseCategory).filter(ExpenseCategory.name == body.name).first():
        raise HTTPException(status_code=400, detail="Category already exists")
    row = ExpenseCategory(name=body.name)
    db.add(row)
    db.commit()
    db.refresh(row)
    return {"success": True, "category": _category_to_dict(row)}


@categories_router.delete("/{category_id}")
def delete_expense_category(
    category_id: uuid.UUID,
    db: Session = Depends(get_db),
    _=Depends(require_page_permission("expenses", "delete")),
):
    row = db.query(ExpenseCategory).filter(ExpenseCategory.id == category_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Category not found")
    db.delete(row)
    db.commit()
    return {"success": True, "message": "Category deleted successfully"}
