"""Aggregates behind the tickets dashboard charts."""
from datetime import datetime
from typing import Dict, Iterable, List

from .time_rules import ensure_utc, utc_to_local


TICKET_STATUSES = ("open", "in-progress", "pending", "closed")
WEEK_LABELS = ("Week 1", "Week 2", "Week 3", "Week 4")
MAX_RESOLUTION_HOURS = 28


def week_of_month(day: int) -> int:
    """0-based bucket: days 1-7, 8-14, 15-21, and 22 onward share the last week."""
    return min((day - 1) // 7, len(WEEK_LABELS) - 1)


def resolution_hours(ticket) -> float:
    if ticket.resolved_at is None or ticket.date_time_reported is None:
        return 0.0
    delta = ensure_utc(ticket.resolved_at) - ensure_utc(ticket.date_time_reported)
    return delta.total_seconds() / 3600


def ticket_stats(tickets: Iterable, now: datetime) -> Dict[str, object]:
    tickets = list(tickets)
    local_now = utc_to_local(now)

    status_counts = {s: 0 for s in TICKET_STATUSES}
    categories: Dict[str, int] = {}
    for t in tickets:
        status_counts[t.status] = status_counts.get(t.status, 0) + 1
        categories[t.category] = categories.get(t.category, 0) + 1

    volume = [0] * len(WEEK_LABELS)
    hours: List[List[float]] = [[] for _ in WEEK_LABELS]
    for t in tickets:
        created = utc_to_local(t.created_at) if t.created_at is not None else None
        if created is None or (created.year, created.month) != (local_now.year, local_now.month):
            continue
        week = week_of_month(created.day)
        volume[week] += 1
        if t.status == "closed" and t.resolved_at is not None:
            hours[week].append(resolution_hours(t))

    resolution = []
    for label, samples in zip(WEEK_LABELS, hours):
        mean = sum(samples) / len(samples) if samples else 0
        resolution.append({"week": label, "hours": round(min(max(mean, 0), MAX_RESOLUTION_HOURS))})

    return {
        "statusCounts": status_counts,
        "categoryDistribution": [
            {"name": name, "value": count}
            for name, count in sorted(categories.items(), key=lambda kv: kv[1], reverse=True)
        ],
        "monthlyVolume": [{"month": label, "tickets": n} for label, n in zip(WEEK_LABELS, volume)],
        "resolutionTime": resolution,
    }
