"""Running cost of tickets since the last clearance, priced by category."""
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from .time_rules import ensure_utc, isoformat


def _amount(value: float):
    return int(value) if float(value).is_integer() else value


def ticket_cost_summary(
    tickets: Iterable,
    prices: Mapping[str, float],
    last_cleared: Optional[datetime] = None,
) -> Dict[str, object]:
    """
    Price every ticket created at or after `last_cleared`.

    Categories without a price (or no longer present) cost 0. The
    breakdown keeps categories in order of first appearance.
    """
    since = ensure_utc(last_cleared)
    rows: List[dict] = []
    breakdown: Dict[str, Dict[str, float]] = {}
    total = 0.0
    for t in tickets:
        created = ensure_utc(t.created_at)
        if since is not None and (created is None or created < since):
            continue
        price = float(prices.get(t.category) or 0)
        total += price
        bucket = breakdown.setdefault(t.category, {"count": 0, "total": 0.0})
        bucket["count"] += 1
        bucket["total"] += price
        rows.append({
            "ticketId": t.ticket_id,
            "category": t.category,
            "price": _amount(price),
            "createdAt": isoformat(created),
            "clientName": t.client_name,
        })
    return {
        "totalCost": _amount(total),
        "ticketCount": len(rows),
        "ticketCosts": rows,
        "categoryBreakdown": [
            {"category": name, "count": int(b["count"]), "total": _amount(b["total"])}
            for name, b in breakdown.items()
        ],
        "lastClearedDate": isoformat(since),
    }
