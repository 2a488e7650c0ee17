from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_page_permission, require_superadmin
from ..db import get_db
from ..models.models import Ticket, TicketCategory, TicketCostClearance, User
from ..services.ticket_costs import ticket_cost_summary
from ..services.time_rules import isoformat


router = APIRouter(prefix="/api/ticket-costs", tags=["tickets"])
logger = structlog.get_logger(__name__)


def _latest_clearance(db: Session) -> Optional[TicketCostClearance]:
    return db.query(TicketCostClearance).order_by(TicketCostClearance.cleared_at.desc()).first()


def _current_summary(db: Session) -> dict:
    last = _latest_clearance(db)
    since = last.cleared_at if last else None
    q = db.query(Ticket)
    if since is not None:
        q = q.filter(Ticket.created_at >= since)
    prices = {c.name: c.price for c in db.query(TicketCategory).all()}
    return ticket_cost_summary(q.order_by(Ticket.created_at.desc()).all(), prices, since)


@router.get("")
def get_ticket_costs(db: Session = Depends(get_db), _=Depends(require_page_permission("tickets", "view"))):
    return _current_summary(db)


@router.post("")
def clear_ticket_costs(db: Session = Depends(get_db), me: User = Depends(require_superadmin())):
    summary = _current_summary(db)
    row = TicketCostClearance(
        cleared_by=me.email,
        ticket_count=summary["ticketCount"],
        total_cost=summary["totalCost"],
        category_breakdown=summary["categoryBreakdown"],
    )
    db.add(row)
    db.commit()
    logger.info("ticket_costs_cleared", by=me.email, tickets=row.ticket_count, total=row.total_cost)
    return {"success": True, "message": "Ticket costs cleared successfully"}


@router.get("/history")
def clearance_history(db: Session = Depends(get_db), _=Depends(require_superadmin())):
    rows = db.query(TicketCostClearance).order_by(TicketCostClearance.cleared_at.desc()).all()
    return {
        "paymentHistory": [
            {
                "_id": str(r.id),
                "clearedAt": isoformat(r.cleared_at),
                "clearedBy": r.cleared_by,
                "ticketCount": r.ticket_count,
                "totalCost": r.total_cost,
                "categoryBreakdown": r.category_breakdown or [],
            }
            for r in rows
        ]
    }
