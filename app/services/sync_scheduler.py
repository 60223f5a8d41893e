from datetime import datetime, timezone
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from app.database import get_db
from app.models import Venue
from app.services.sync_service import CalendarSyncService
from app.utils.errors import ErrorKind
from app.utils.logger import get_logger
from config.config import Config

logger = get_logger(__name__)


class SyncScheduler:
    """One cancellable periodic full-sync job per venue"""

    def __init__(self, sync_service: CalendarSyncService = None, scheduler: BackgroundScheduler = None,
                 interval_minutes: int = None):
        self.sync_service = sync_service or CalendarSyncService()
        self.scheduler = scheduler or BackgroundScheduler(timezone='UTC')
        self.interval_minutes = interval_minutes or Config.AUTO_SYNC_INTERVAL_MINUTES

    @staticmethod
    def job_id(venue_id: int) -> str:
        return f'venue_sync_{venue_id}'

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self, paused: bool = False):
        if not self.scheduler.running:
            self.scheduler.start(paused=paused)
            logger.info(f"Sync scheduler started (interval {self.interval_minutes} min)")

    def shutdown(self, wait: bool = False):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Sync scheduler stopped")

    def schedule_venue(self, venue_id: int, run_now: bool = False):
        """Add or replace the venue's periodic job"""
        options = {}
        if run_now:
            options['next_run_time'] = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self._run_venue_sync,
            trigger='interval',
            minutes=self.interval_minutes,
            args=[venue_id],
            id=self.job_id(venue_id),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            **options
        )
        logger.info(f"Scheduled calendar sync for venue {venue_id}")

    def unschedule_venue(self, venue_id: int) -> bool:
        try:
            self.scheduler.remove_job(self.job_id(venue_id))
        except JobLookupError:
            return False
        logger.info(f"Unscheduled calendar sync for venue {venue_id}")
        return True

    def is_scheduled(self, venue_id: int) -> bool:
        return self.scheduler.get_job(self.job_id(venue_id)) is not None

    def resume_enabled_venues(self) -> int:
        """Schedule every venue that has sync switched on"""
        with get_db() as db:
            venue_ids = [row.id for row in db.query(Venue.id).filter(Venue.sync_enabled.is_(True)).all()]
        for venue_id in venue_ids:
            self.schedule_venue(venue_id)
        logger.info(f"Resumed calendar sync for {len(venue_ids)} venues")
        return len(venue_ids)

    def _run_venue_sync(self, venue_id: int):
        """Job body; failures are logged and retried on the next tick"""
        try:
            result = self.sync_service.run_full_sync(venue_id)
        except Exception as e:
            logger.error(f"Scheduled sync for venue {venue_id} crashed: {str(e)}")
            return

        if result.ok:
            return
        if result.error in (ErrorKind.SYNC_DISABLED, ErrorKind.NOT_FOUND):
            self.unschedule_venue(venue_id)
        elif result.error != ErrorKind.SYNC_IN_PROGRESS:
            logger.warning(f"Scheduled sync for venue {venue_id} failed: {result.message}")
