"""Tests for the batch scheduler: schedule control, aggregation, single-flight."""

import threading
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from cftracker.services.sync_service import SyncOutcome, SyncTarget
from cftracker.tasks.scheduler import (
    DEFAULT_SCHEDULE, JOB_ID, InvalidScheduleError, SyncScheduler,
    _crontab_day_of_week, get_scheduler, parse_schedule,
)

TARGETS = [SyncTarget(1, 'alpha'), SyncTarget(2, 'beta'), SyncTarget(3, 'gamma')]


@pytest.fixture()
def service():
    svc = MagicMock()
    svc.sync.return_value = SyncOutcome.ok()
    return svc


@pytest.fixture()
def notifier():
    return MagicMock()


@pytest.fixture()
def scheduler(app, service, notifier, monkeypatch):
    sched = SyncScheduler(app, sync_service=service, notifier=notifier, delay=0)
    monkeypatch.setattr(sched, '_load_targets', lambda: list(TARGETS))
    yield sched
    sched.shutdown()


class TestParseSchedule:
    def test_valid(self):
        assert parse_schedule('*/15 * * * *') is not None

    @pytest.mark.parametrize('expr', ['', '   ', 'not a cron', '61 * * * *', '* * *'])
    def test_invalid(self, expr):
        with pytest.raises(InvalidScheduleError):
            parse_schedule(expr)

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            parse_schedule('bogus')

    @pytest.mark.parametrize('expr', ['0 2 * * 8', '0 2 * * 5-2', '0 2 * * 1/0'])
    def test_invalid_day_of_week(self, expr):
        with pytest.raises(InvalidScheduleError):
            parse_schedule(expr)


def _fire_weekdays(expr, count=7):
    """Weekdays (Monday=0) of the next ``count`` fire times of ``expr``."""
    trigger = parse_schedule(expr)
    now = datetime.now(trigger.timezone)
    previous = None
    weekdays = []
    for _ in range(count):
        fire = trigger.get_next_fire_time(previous, now)
        assert (fire.hour, fire.minute) == (2, 0)
        weekdays.append(fire.weekday())
        previous = fire
        now = fire + timedelta(seconds=1)
    return weekdays


class TestCrontabDayOfWeek:
    @pytest.mark.parametrize('field, expected', [
        ('*', '*'),
        ('0', 'sun'),
        ('7', 'sun'),
        ('1-5', 'mon,tue,wed,thu,fri'),
        ('0,6', 'sun,sat'),
        ('5-7', 'fri,sat,sun'),
        ('*/2', 'sun,tue,thu,sat'),
        ('mon-fri', 'mon-fri'),
    ])
    def test_rewritten_with_names(self, field, expected):
        assert _crontab_day_of_week(field) == expected

    def test_zero_is_sunday(self):
        assert set(_fire_weekdays('0 2 * * 0')) == {6}

    def test_seven_is_sunday(self):
        assert set(_fire_weekdays('0 2 * * 7')) == {6}

    def test_weekdays_range(self):
        assert set(_fire_weekdays('0 2 * * 1-5', count=10)) == {0, 1, 2, 3, 4}

    def test_saturday(self):
        assert set(_fire_weekdays('0 2 * * 6')) == {5}


class TestScheduleControl:
    def test_initial_status(self, scheduler):
        assert scheduler.status() == {
            'active': False,
            'last_run': None,
            'is_running': False,
            'schedule': DEFAULT_SCHEDULE,
        }

    def test_start_registers_job(self, scheduler):
        schedule = scheduler.start('30 3 * * *')
        assert schedule == '30 3 * * *'
        assert scheduler.status()['active'] is True
        assert scheduler._scheduler.get_job(JOB_ID) is not None

    def test_start_with_invalid_falls_back(self, scheduler):
        assert scheduler.start('nonsense') == DEFAULT_SCHEDULE
        assert scheduler.status()['schedule'] == DEFAULT_SCHEDULE
        assert scheduler.status()['active'] is True

    def test_update_replaces_job(self, scheduler):
        scheduler.start()
        scheduler.update_schedule('0 */6 * * *')
        assert scheduler.status()['schedule'] == '0 */6 * * *'
        assert len(scheduler._scheduler.get_jobs()) == 1

    def test_invalid_update_keeps_previous(self, scheduler):
        scheduler.start('30 3 * * *')
        with pytest.raises(InvalidScheduleError):
            scheduler.update_schedule('99 99 * * *')
        assert scheduler.status()['schedule'] == '30 3 * * *'
        assert scheduler._scheduler.get_job(JOB_ID) is not None

    def test_stop(self, scheduler):
        scheduler.start()
        scheduler.stop()
        assert scheduler.status()['active'] is False
        assert scheduler._scheduler.get_job(JOB_ID) is None

    def test_app_scheduler_is_inactive_in_testing(self, app):
        status = get_scheduler(app).status()
        assert status['active'] is False
        assert status['schedule'] == app.config['SYNC_SCHEDULE']

    def test_invalid_configured_schedule_reports_default(self, app):
        app.config['SYNC_SCHEDULE'] = 'every night'
        sched = SyncScheduler(app, sync_service=MagicMock(), notifier=MagicMock())
        assert sched.status()['schedule'] == DEFAULT_SCHEDULE

    def test_configured_schedule_is_normalized(self, app):
        app.config['SYNC_SCHEDULE'] = '  30 3 * * 1 '
        sched = SyncScheduler(app, sync_service=MagicMock(), notifier=MagicMock())
        assert sched.status()['schedule'] == '30 3 * * 1'


class TestRunOnce:
    def test_counts_successes(self, scheduler, service, notifier):
        result = scheduler.run_once()
        assert result['success'] is True
        assert result['stats'] == {'success_count': 3, 'error_count': 0, 'total': 3}
        assert [c.args[0] for c in service.sync.call_args_list] == TARGETS
        notifier.check_and_notify.assert_called_once()

    def test_failures_and_exceptions_count_as_errors(self, scheduler, service):
        service.sync.side_effect = [
            SyncOutcome.ok(),
            SyncOutcome.failure('no profile data'),
            RuntimeError('boom'),
        ]
        result = scheduler.run_once()
        assert result['success'] is True
        assert result['stats'] == {'success_count': 1, 'error_count': 2, 'total': 3}

    def test_notifier_error_does_not_fail_batch(self, scheduler, notifier):
        notifier.check_and_notify.side_effect = RuntimeError('smtp down')
        assert scheduler.run_once()['success'] is True

    def test_sets_last_run(self, scheduler):
        scheduler.run_once()
        status = scheduler.status()
        assert status['last_run'] is not None
        assert status['is_running'] is False

    def test_empty_roster(self, scheduler, service, monkeypatch):
        monkeypatch.setattr(scheduler, '_load_targets', lambda: [])
        result = scheduler.run_once()
        assert result['stats'] == {'success_count': 0, 'error_count': 0, 'total': 0}
        service.sync.assert_not_called()

    def test_load_failure_reported(self, scheduler, monkeypatch):
        def broken():
            raise RuntimeError('database is locked')

        monkeypatch.setattr(scheduler, '_load_targets', broken)
        result = scheduler.run_once()
        assert result['success'] is False
        assert 'database is locked' in result['message']
        assert scheduler.status()['is_running'] is False

    def test_delay_between_students(self, scheduler, monkeypatch):
        slept = []
        monkeypatch.setattr('cftracker.tasks.scheduler.time.sleep', slept.append)
        scheduler.delay = 0.25
        scheduler.run_once()
        assert slept == [0.25, 0.25]

    def test_concurrent_run_is_skipped(self, scheduler, service):
        entered = threading.Event()
        release = threading.Event()

        def slow_sync(target, test_mode=False):
            entered.set()
            release.wait(timeout=5)
            return SyncOutcome.ok()

        service.sync.side_effect = slow_sync
        results = {}
        worker = threading.Thread(target=lambda: results.update(first=scheduler.run_once()))
        worker.start()
        try:
            assert entered.wait(timeout=5)
            running = scheduler.status()
            assert running['is_running'] is True

            second = scheduler.run_once()
            assert second['skipped'] is True
            assert second['success'] is False
            assert scheduler.status()['last_run'] == running['last_run']
        finally:
            release.set()
            worker.join(timeout=5)

        assert results['first']['success'] is True
        assert scheduler.status()['is_running'] is False


class TestLoadTargets:
    def test_students_in_id_order(self, app, db, sample_data):
        sched = SyncScheduler(app, sync_service=MagicMock(), notifier=MagicMock(), delay=0)
        targets = sched._load_targets()
        assert targets == [SyncTarget(sample_data['student_id'], 'tourist')]
