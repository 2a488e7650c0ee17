#!/usr/bin/env python3
"""
Seed reference data: ticket categories, expense categories and technicians.

Usage:
  python scripts/seed_data.py

This script is idempotent: running it multiple times only adds what is missing.
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from ispdesk.db import Base, SessionLocal, engine
from ispdesk.models.models import ExpenseCategory, Technician, TicketCategory
from ispdesk.routes.expenses import DEFAULT_EXPENSE_CATEGORIES

TICKET_CATEGORIES = [
    "No Internet",
    "Slow Connection",
    "Intermittent Connection",
    "Router Issue",
    "Fibre Cut",
    "Relocation",
    "Billing",
]

TECHNICIANS = [
    {"name": "Field Team A", "phone": ""},
    {"name": "Field Team B", "phone": ""},
]


def seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        existing = {n for (n,) in db.query(TicketCategory.name).all()}
        added = [TicketCategory(name=n) for n in TICKET_CATEGORIES if n not in existing]
        db.add_all(added)
        print(f"Ticket categories: {len(added)} added")

        existing = {n for (n,) in db.query(ExpenseCategory.name).all()}
        added = [ExpenseCategory(name=n) for n in DEFAULT_EXPENSE_CATEGORIES if n not in existing]
        db.add_all(added)
        print(f"Expense categories: {len(added)} added")

        existing = {n for (n,) in db.query(Technician.name).all()}
        added = [Technician(name=t["name"], phone=t["phone"] or None) for t in TECHNICIANS if t["name"] not in existing]
        db.add_all(added)
        print(f"Technicians: {len(added)} added")

        db.commit()
        print("Seed data loaded successfully!")
    except Exception as e:
        db.rollback()
        print(f"Error seeding data: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
