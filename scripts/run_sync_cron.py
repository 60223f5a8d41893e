#!/usr/bin/env python3
"""
Cron script running one full calendar sync for every sync-enabled venue
For deployments without the in-process scheduler: */15 * * * * /path/to/venv/bin/python /path/to/run_sync_cron.py
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import get_db, init_db
from app.models import Venue
from app.services.sync_service import CalendarSyncService
from app.utils.logger import get_logger
from app.utils.timeutils import utcnow

logger = get_logger('sync_cron')


def main():
    """Main cron job function"""
    logger.info(f"Starting calendar sync cron job at {utcnow()}")

    init_db()

    with get_db() as db:
        venue_ids = [row.id for row in db.query(Venue.id).filter(Venue.sync_enabled.is_(True)).all()]

    sync_service = CalendarSyncService()
    failures = 0
    for venue_id in venue_ids:
        try:
            result = sync_service.run_full_sync(venue_id)
        except Exception as e:
            failures += 1
            logger.error(f"Sync for venue {venue_id} raised: {str(e)}")
            continue
        if not result.ok:
            failures += 1
            logger.warning(f"Sync for venue {venue_id} failed: {result.message}")

    logger.info(f"Calendar sync cron job finished: {len(venue_ids)} venues, {failures} failures")
    return failures


if __name__ == "__main__":
    sys.exit(1 if main() else 0)
