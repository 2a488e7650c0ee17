"""Human-readable sequential codes: TKT-001, EQ-001, BATCH-001, EXP-001, ST-001, REQ-0001."""
from typing import List

from sqlalchemy.orm import Session


def format_code(prefix: str, number: int, width: int = 3) -> str:
    return f"{prefix}-{number:0{width}d}"


def next_codes(db: Session, model, column, prefix: str, count: int = 1, width: int = 3) -> List[str]:
    """
    Allocate `count` codes starting at (row count + 1).

    Codes already taken (rows deleted out of order) are skipped so the
    result never collides with an existing value.
    """
    taken = {value for (value,) in db.query(column).all()}
    number = db.query(model).count() + 1
    codes: List[str] = []
    while len(codes) < count:
        code = format_code(prefix, number, width)
        if code not in taken:
            codes.append(code)
        number += 1
    return codes


def next_code(db: Session, model, column, prefix: str, width: int = 3) -> str:
    return next_codes(db, model, column, prefix, 1, width)[0]
