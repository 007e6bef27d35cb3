from __future__ import annotations

import logging
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from cftracker.extensions import db
from cftracker.models import Student, ProblemSolveRecord
from cftracker.services.mail_service import send_inactivity_email

logger = logging.getLogger(__name__)


class InactivityService:
    """Find students without a recent solve and remind them by email."""

    def __init__(self, mailer=None, days: int = None):
        self.mailer = mailer or send_inactivity_email
        self._days = days

    @property
    def days(self) -> int:
        if self._days is None:
            return current_app.config.get('INACTIVITY_DAYS', 7)
        return self._days

    def _cutoff(self) -> datetime:
        return datetime.utcnow() - timedelta(days=self.days)

    def _has_recent_solve(self, student_id: int, cutoff: datetime) -> bool:
        return db.session.query(
            ProblemSolveRecord.query.filter(
                ProblemSolveRecord.student_id == student_id,
                ProblemSolveRecord.date_solved >= cutoff,
            ).exists()
        ).scalar()

    def find_inactive_students(self, synced_only: bool = False) -> list[Student]:
        cutoff = self._cutoff()
        query = Student.query.filter(Student.email_notifications.is_(True))
        if synced_only:
            query = query.filter(Student.last_synced.isnot(None))
        return [
            s for s in query.order_by(Student.id).all()
            if not self._has_recent_solve(s.id, cutoff)
        ]

    def check_and_notify(self) -> dict:
        """Remind every inactive student once.

        A failed send is logged and skipped; it neither stops the loop nor
        bumps the student's reminder counter. A failed counter update is
        rolled back and counted as a failure too.
        """
        inactive = self.find_inactive_students()
        notified = 0
        failed = 0
        for student in inactive:
            try:
                self.mailer(student.email, student.name)
            except Exception as e:
                failed += 1
                logger.error(f"Failed to send reminder to {student.email}: {e}")
                continue

            email = student.email
            try:
                student.reminders_sent = (student.reminders_sent or 0) + 1
                student.last_reminder_at = datetime.utcnow()
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                failed += 1
                logger.error(f"Reminder sent to {email} but not recorded: {e}")
                continue
            notified += 1

        logger.info(
            f"Inactivity check done: inactive={len(inactive)}, "
            f"notified={notified}, failed={failed}"
        )
        return {'checked': len(inactive), 'notified': notified, 'failed': failed}

    def get_stats(self) -> dict:
        inactive_count = len(self.find_inactive_students(synced_only=True))
        total_emails = db.session.query(
            func.coalesce(func.sum(Student.reminders_sent), 0)
        ).scalar()
        last_run = db.session.query(func.max(Student.last_reminder_at)).scalar()
        return {
            'inactive_count': inactive_count,
            'total_emails': int(total_emails or 0),
            'last_run': last_run.isoformat() if last_run else None,
        }
