from typing import Optional

from .common import TrimmedModel


class ExpenseCreate(TrimmedModel):
    description: Optional[str] = None
    category: Optional[str] = None
    station: Optional[str] = None
    amount: Optional[float] = None
    balance: Optional[float] = None
    date: Optional[str] = None
    status: Optional[str] = None


class ExpenseUpdate(ExpenseCreate):
    pass
