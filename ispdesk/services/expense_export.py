"""
CSV export of expenses.

The export dialog lets the user pick a payment status and either a calendar
month or a from/to date range; the two date modes are mutually exclusive.
"""
import calendar
import csv
import io
from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, List, Optional, Tuple

from .time_rules import parse_date


CSV_HEADERS = ("ID", "Description", "Category", "Station", "Amount", "Date", "Status")
STATUS_LABELS = {"fully-paid": "Fully Paid", "partially-paid": "Partially Paid"}
EXPENSE_STATUSES = ("fully-paid", "partially-paid")


class ExportFilterError(ValueError):
    pass


@dataclass(frozen=True)
class ExportFilters:
    status: str = "all"
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    month: Optional[str] = None  # "YYYY-MM"

    def with_month(self, month: Optional[str]) -> "ExportFilters":
        return replace(self, month=month or None, date_from=None, date_to=None)

    def with_range(self, date_from: Optional[date], date_to: Optional[date]) -> "ExportFilters":
        return replace(self, month=None, date_from=date_from, date_to=date_to)

    @classmethod
    def from_query(
        cls,
        status: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        month: Optional[str] = None,
    ) -> "ExportFilters":
        status = status or "all"
        if status != "all" and status not in EXPENSE_STATUSES:
            raise ExportFilterError(f"Invalid status: {status}")
        if month and (date_from or date_to):
            raise ExportFilterError("Choose either a month or a date range, not both")
        if month:
            _split_month(month)
        try:
            start = parse_date(date_from)
            end = parse_date(date_to)
        except ValueError:
            raise ExportFilterError("Dates must be in YYYY-MM-DD format")
        return cls(status=status, date_from=start, date_to=end, month=month or None)


def _split_month(month: str) -> Tuple[int, int]:
    try:
        year_text, month_text = month.split("-")
        year, month_num = int(year_text), int(month_text)
    except ValueError:
        raise ExportFilterError("Month must be in YYYY-MM format")
    if not 1 <= month_num <= 12:
        raise ExportFilterError("Month must be in YYYY-MM format")
    return year, month_num


def filter_expenses(expenses: Iterable, filters: ExportFilters) -> list:
    result = list(expenses)
    if filters.status != "all":
        result = [e for e in result if e.status == filters.status]
    if filters.date_from:
        result = [e for e in result if e.expense_date >= filters.date_from]
    if filters.date_to:
        # inclusive through the end of the day
        result = [e for e in result if e.expense_date <= filters.date_to]
    if filters.month:
        year, month_num = _split_month(filters.month)
        result = [e for e in result if e.expense_date.year == year and e.expense_date.month == month_num]
    return result


def export_filename(filters: ExportFilters) -> str:
    name = "expenses"
    if filters.month:
        year, month_num = _split_month(filters.month)
        name = f"expenses_{calendar.month_name[month_num]}_{year}"
    elif filters.date_from and filters.date_to:
        name = f"expenses_{filters.date_from.isoformat()}_to_{filters.date_to.isoformat()}"
    elif filters.date_from:
        name = f"expenses_from_{filters.date_from.isoformat()}"
    if filters.status != "all":
        name += f"_{filters.status}"
    return name + ".csv"


def _format_amount(amount) -> str:
    value = float(amount or 0)
    return str(int(value)) if value.is_integer() else str(value)


def expense_row(expense) -> List[str]:
    return [
        expense.expense_id,
        expense.description or "",
        expense.category,
        expense.station or "General",
        _format_amount(expense.amount),
        expense.expense_date.isoformat(),
        STATUS_LABELS.get(expense.status, "Partially Paid"),
    ]


def export_expenses_csv(expenses: Iterable, filters: ExportFilters) -> Tuple[str, str]:
    """Return (filename, csv text) for the expenses matching `filters`."""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for e in filter_expenses(expenses, filters):
        writer.writerow(expense_row(e))
    return export_filename(filters), output.getvalue().rstrip("\n")
