from __future__ import annotations

import logging
import threading
import time
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from cftracker.extensions import db
from cftracker.models import Student
from cftracker.services.inactivity_service import InactivityService
from cftracker.services.sync_service import SyncTarget, get_sync_service

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE = '0 2 * * *'
JOB_ID = 'codeforces_sync'


class InvalidScheduleError(ValueError):
    """Raised when a cron expression cannot be parsed."""


# crontab numbers weekdays from Sunday (0 or 7); APScheduler from Monday
_WEEKDAY_NAMES = ('sun', 'mon', 'tue', 'wed', 'thu', 'fri', 'sat')


def _crontab_day_of_week(field: str) -> str:
    """Rewrite a crontab day-of-week field with weekday names.

    Numeric values, ranges and steps are expanded to an explicit list of
    names, so ``1-5`` becomes ``mon,tue,wed,thu,fri``. Parts that are
    already names are passed through.
    """
    if field in ('*', '?'):
        return '*'

    days = []
    passthrough = []
    for part in field.split(','):
        base, _, step = part.partition('/')
        if base == '*':
            first, last = 0, 6
        elif '-' in base:
            first, _, last = base.partition('-')
            if not (first.isdigit() and last.isdigit()):
                passthrough.append(part)
                continue
            first, last = int(first), int(last)
        elif base.isdigit():
            first = last = int(base)
            if step:
                last = 6
        else:
            passthrough.append(part)
            continue

        if not (0 <= first <= last <= 7):
            raise ValueError(f'day of week out of range: {part}')
        if step and (not step.isdigit() or int(step) == 0):
            raise ValueError(f'invalid step: {part}')
        for day in range(first, last + 1, int(step or 1)):
            name = _WEEKDAY_NAMES[day % 7]
            if name not in days:
                days.append(name)

    return ','.join(days + passthrough)


def parse_schedule(expr: str) -> CronTrigger:
    """Build a trigger from a five-field crontab expression."""
    if not expr or not expr.strip():
        raise InvalidScheduleError('Schedule is required')
    fields = expr.split()
    if len(fields) != 5:
        raise InvalidScheduleError(
            f'Invalid cron schedule: {expr} (expected 5 fields, got {len(fields)})'
        )
    minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            minute=minute, hour=hour, day=day, month=month,
            day_of_week=_crontab_day_of_week(day_of_week),
        )
    except ValueError as e:
        raise InvalidScheduleError(f'Invalid cron schedule: {expr} ({e})') from e


class SyncScheduler:
    """Recurring and manual batch sync with single-flight execution.

    Two independent states: the cron job is registered or not (``active``),
    and a batch is running or idle (``is_running``). The timer and manual
    triggers both enter through :meth:`run_once`; a call made while a batch
    runs is rejected, not queued, and leaves ``last_run`` untouched.
    """

    def __init__(self, app, sync_service=None, notifier=None, delay: float = None,
                 scheduler: BackgroundScheduler = None):
        self.app = app
        self._sync_service = sync_service
        self._notifier = notifier
        self.delay = app.config.get('SYNC_STUDENT_DELAY', 0.5) if delay is None else delay
        self._scheduler = scheduler or BackgroundScheduler()

        self._state_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._is_running = False
        self._last_run = None
        self._active = False
        self._schedule = self._initial_schedule(app.config.get('SYNC_SCHEDULE'))

    @staticmethod
    def _initial_schedule(schedule):
        try:
            parse_schedule(schedule)
        except InvalidScheduleError:
            return DEFAULT_SCHEDULE
        return schedule.strip()

    @property
    def sync_service(self):
        return self._sync_service or get_sync_service(self.app)

    @property
    def notifier(self):
        if self._notifier is None:
            self._notifier = InactivityService()
        return self._notifier

    # ------------------------------------------------------------------
    # Schedule control
    # ------------------------------------------------------------------

    def start(self, schedule: str = None, strict: bool = False) -> str:
        """Register (or replace) the recurring job; return the effective schedule.

        With ``strict`` an invalid expression raises
        :class:`InvalidScheduleError` and the current job stays as it was.
        Otherwise the default schedule is used instead.
        """
        schedule = schedule if schedule is not None else self._schedule
        try:
            trigger = parse_schedule(schedule)
        except InvalidScheduleError as e:
            if strict:
                raise
            logger.error(f"{e}. Using default schedule {DEFAULT_SCHEDULE} instead.")
            schedule = DEFAULT_SCHEDULE
            trigger = parse_schedule(schedule)
        schedule = schedule.strip()

        self._scheduler.add_job(
            self._scheduled_run,
            trigger,
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()

        with self._state_lock:
            self._schedule = schedule
            self._active = True
        logger.info(f"Codeforces sync scheduled at: {schedule}")
        return schedule

    def update_schedule(self, schedule: str) -> str:
        """Replace the schedule at runtime, rejecting invalid expressions."""
        return self.start(schedule, strict=True)

    def stop(self) -> None:
        if self._scheduler.get_job(JOB_ID):
            self._scheduler.remove_job(JOB_ID)
        with self._state_lock:
            self._active = False
        logger.info("Codeforces sync schedule stopped")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        with self._state_lock:
            self._active = False

    def status(self) -> dict:
        with self._state_lock:
            return {
                'active': self._active,
                'last_run': self._last_run.isoformat() if self._last_run else None,
                'is_running': self._is_running,
                'schedule': self._schedule,
            }

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def _scheduled_run(self):
        result = self.run_once()
        logger.info(f"Scheduled sync finished: {result}")

    def run_once(self) -> dict:
        """Sync every student sequentially, then run the inactivity check."""
        if not self._run_lock.acquire(blocking=False):
            logger.info("Sync already in progress, skipping this run")
            return {
                'success': False,
                'skipped': True,
                'message': 'Sync already in progress',
            }

        try:
            with self._state_lock:
                self._is_running = True
                self._last_run = datetime.utcnow()
            logger.info(f"Starting Codeforces data sync at {self._last_run.isoformat()}")

            with self.app.app_context():
                try:
                    stats = self._run_batch()
                except Exception as e:
                    logger.exception("Error during Codeforces data sync")
                    return {'success': False, 'message': f'Sync failed: {e}'}
                finally:
                    db.session.remove()

            logger.info(
                f"Codeforces data sync completed: {stats['success_count']} successful, "
                f"{stats['error_count']} failed"
            )
            return {
                'success': True,
                'message': 'Sync completed successfully',
                'stats': stats,
            }
        finally:
            with self._state_lock:
                self._is_running = False
            self._run_lock.release()

    def _load_targets(self):
        return [
            SyncTarget.from_student(s)
            for s in Student.query.order_by(Student.id).all()
        ]

    def _run_batch(self) -> dict:
        targets = self._load_targets()
        logger.info(f"Found {len(targets)} students to sync")

        success_count = 0
        error_count = 0
        for i, target in enumerate(targets):
            try:
                outcome = self.sync_service.sync(target, test_mode=False)
                if outcome.success:
                    success_count += 1
                else:
                    error_count += 1
                    logger.error(f"Failed to sync data for {target.handle}: {outcome.error}")
            except Exception as e:
                error_count += 1
                logger.error(f"Error syncing data for {target.handle}: {e}")

            if self.delay and i < len(targets) - 1:
                time.sleep(self.delay)

        logger.info("Checking for inactive students...")
        try:
            self.notifier.check_and_notify()
        except Exception as e:
            logger.error(f"Inactivity check failed: {e}")

        return {
            'success_count': success_count,
            'error_count': error_count,
            'total': len(targets),
        }


def get_scheduler(app) -> SyncScheduler:
    return app.extensions['sync_scheduler']


def init_scheduler(app) -> SyncScheduler:
    """Attach a SyncScheduler to the app; register the cron job if enabled."""
    sync_scheduler = SyncScheduler(app)
    app.extensions['sync_scheduler'] = sync_scheduler

    if not app.config.get('SCHEDULER_ENABLED', False):
        logger.info("Scheduler disabled by config")
        return sync_scheduler

    try:
        sync_scheduler.start(app.config.get('SYNC_SCHEDULE'))
        logger.info("Scheduler started successfully")
    except Exception as e:
        logger.error(f"Scheduler failed to start: {e}")
    return sync_scheduler
