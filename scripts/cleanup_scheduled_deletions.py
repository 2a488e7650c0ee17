#!/usr/bin/env python3
"""
Delete internet connections whose 72-hour deletion window has passed.

Meant for cron when the in-process sweeper is disabled:
  * * * * * cd /srv/ispdesk && python scripts/cleanup_scheduled_deletions.py
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from ispdesk.db import SessionLocal
from ispdesk.logging import setup_logging
from ispdesk.services.connection_lifecycle import sweep_expired


def run() -> int:
    setup_logging()
    db = SessionLocal()
    try:
        deleted = sweep_expired(db)
        print(f"Deleted {deleted} connection(s)")
        return deleted
    finally:
        db.close()


if __name__ == "__main__":
    run()
