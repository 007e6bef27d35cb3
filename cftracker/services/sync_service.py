from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from cftracker.codeforces import CodeforcesClient, UpstreamSubmission
from cftracker.extensions import db
from cftracker.models import Student, ContestRecord, ProblemSolveRecord

logger = logging.getLogger(__name__)

RECENT_SUBMISSIONS_LIMIT = 10


@dataclass(frozen=True)
class SyncTarget:
    """The part of a student the sync engine needs: an id and a handle.

    ``id`` is ``None`` for ephemeral targets used by test-mode diagnostics,
    which never touch the database.
    """

    id: int | None
    handle: str

    @classmethod
    def from_student(cls, student: Student) -> SyncTarget:
        return cls(id=student.id, handle=student.handle)

    @classmethod
    def ephemeral(cls, handle: str) -> SyncTarget:
        return cls(id=None, handle=handle)


@dataclass
class SyncOutcome:
    success: bool
    error: str | None = None
    details: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, **details) -> SyncOutcome:
        return cls(success=True, details=details)

    @classmethod
    def failure(cls, error: str) -> SyncOutcome:
        return cls(success=False, error=error)

    def to_dict(self) -> dict:
        data = {'success': self.success}
        if self.error:
            data['error'] = self.error
        data.update(self.details)
        return data


def dedupe_solved(submissions: list[UpstreamSubmission]) -> dict[str, UpstreamSubmission]:
    """Accepted submissions keyed by problem, first occurrence wins.

    The API lists submissions newest first, so the kept entry is the most
    recent accepted one. Insertion order follows the upstream order.
    """
    solved = {}
    for sub in submissions:
        if sub.accepted and sub.problem_key not in solved:
            solved[sub.problem_key] = sub
    return solved


def count_unsolved_by_contest(submissions: list[UpstreamSubmission]) -> dict[int, int]:
    """Per contest: distinct problems submitted to but never accepted."""
    attempted = defaultdict(set)
    accepted = defaultdict(set)
    for sub in submissions:
        if sub.contest_id is None:
            continue
        attempted[sub.contest_id].add(sub.problem_index)
        if sub.accepted:
            accepted[sub.contest_id].add(sub.problem_index)
    return {
        contest_id: len(problems - accepted[contest_id])
        for contest_id, problems in attempted.items()
    }


class SyncService:
    """Fetch, normalize and fully replace one student's Codeforces data.

    Each upstream call is tried signed first and unsigned on failure. Steps
    run strictly in order and the first failing fetch aborts the sync. The
    rating refresh is committed before the history fetches and is not rolled
    back if a later step fails. Each collection's delete and insert share
    one transaction, so readers never see an empty interval.

    Two concurrent syncs of the same student are not serialized here; the
    batch scheduler runs students one at a time.
    """

    def __init__(self, client: CodeforcesClient = None):
        self._client = client

    @property
    def client(self) -> CodeforcesClient:
        if self._client is None:
            self._client = CodeforcesClient.from_config(current_app.config)
        return self._client

    def sync(self, target: SyncTarget, test_mode: bool = False) -> SyncOutcome:
        """Sync one target. Never raises; failures come back as outcomes."""
        mode = ' (test mode)' if test_mode else ''
        logger.info(f"Starting sync for {target.handle}{mode}")
        try:
            outcome = self._sync(target, test_mode)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Database error while syncing {target.handle}: {e}")
            outcome = SyncOutcome.failure(f'database error: {e}')
        except Exception as e:
            db.session.rollback()
            logger.exception(f"Unexpected error while syncing {target.handle}")
            outcome = SyncOutcome.failure(str(e))

        if outcome.success:
            logger.info(f"Sync completed for {target.handle}{mode}")
        else:
            logger.warning(f"Sync failed for {target.handle}{mode}: {outcome.error}")
        return outcome

    def _sync(self, target: SyncTarget, test_mode: bool) -> SyncOutcome:
        if not target.handle:
            return SyncOutcome.failure('handle is required')

        student = None
        if not test_mode:
            student = db.session.get(Student, target.id) if target.id is not None else None
            if student is None:
                return SyncOutcome.failure('student not found')

        # 1. Profile
        profile_result = self.client.fetch_with_fallback('fetch_profile', target.handle)
        if not profile_result.ok:
            return SyncOutcome.failure(f'no profile data: {profile_result.error}')
        profile = profile_result.data

        # 2. Rating refresh, kept even if a later step fails
        if not test_mode:
            self._update_ratings(student, profile)

        # 3. Rating history
        contests_result = self.client.fetch_with_fallback('fetch_rating_history', target.handle)
        if not contests_result.ok:
            return SyncOutcome.failure(f'no contest data: {contests_result.error}')
        contests = contests_result.data

        # 4. Replace contest records
        if not test_mode:
            self._replace_contests(student.id, contests)

        # 5. Submissions
        submissions_result = self.client.fetch_with_fallback('fetch_submissions', target.handle)
        if not submissions_result.ok:
            return SyncOutcome.failure(f'no submission data: {submissions_result.error}')
        submissions = submissions_result.data

        # 6. Accepted, one per problem
        solved = dedupe_solved(submissions)

        # 7. Replace solved problems
        if not test_mode:
            self._replace_problems(student.id, solved, count_unsolved_by_contest(submissions))
            return SyncOutcome.ok()

        # 8. Diagnostics, no writes happened
        return SyncOutcome.ok(
            user_data=profile.to_dict(),
            contest_count=len(contests),
            problem_count=len(solved),
            recent_submissions=[
                sub.to_summary() for sub in submissions[:RECENT_SUBMISSIONS_LIMIT]
            ],
        )

    def _update_ratings(self, student: Student, profile) -> None:
        student.current_rating = int(profile.rating or 0)
        student.max_rating = int(profile.max_rating or 0)
        student.last_synced = datetime.utcnow()
        db.session.commit()
        logger.info(
            f"Updated ratings for {student.handle}: "
            f"current={student.current_rating}, max={student.max_rating}"
        )

    def _replace_contests(self, student_id: int, contests) -> None:
        seen = set()
        records = []
        for change in contests:
            if change.contest_id in seen:
                logger.warning(
                    f"Duplicate contest {change.contest_id} in rating history "
                    f"of student {student_id}, keeping the first entry"
                )
                continue
            seen.add(change.contest_id)
            records.append(ContestRecord(
                student_id=student_id,
                contest_id=change.contest_id,
                contest_name=change.contest_name,
                rank=change.rank,
                old_rating=change.old_rating,
                new_rating=change.new_rating,
                rating_change=change.delta,
                date=change.updated_at,
                problems_unsolved=0,
            ))

        try:
            ContestRecord.query.filter_by(student_id=student_id).delete(
                synchronize_session=False
            )
            if records:
                db.session.add_all(records)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        logger.info(f"Stored {len(records)} contest entries for student {student_id}")

    def _replace_problems(self, student_id: int, solved: dict, unsolved_by_contest: dict) -> None:
        records = []
        for problem_key, sub in solved.items():
            record = ProblemSolveRecord(
                student_id=student_id,
                problem_id=problem_key,
                problem_name=sub.problem_name,
                rating=sub.problem_rating,
                date_solved=sub.submitted_at or datetime.utcnow(),
            )
            record.tags = sub.tags
            records.append(record)

        try:
            ProblemSolveRecord.query.filter_by(student_id=student_id).delete(
                synchronize_session=False
            )
            if records:
                db.session.add_all(records)
            for contest in ContestRecord.query.filter_by(student_id=student_id):
                contest.problems_unsolved = unsolved_by_contest.get(contest.contest_id, 0)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        logger.info(f"Stored {len(records)} solved problems for student {student_id}")


def get_sync_service(app=None) -> SyncService:
    """The app-wide SyncService, created on first use."""
    app = app or current_app
    service = app.extensions.get('sync_service')
    if service is None:
        service = SyncService()
        app.extensions['sync_service'] = service
    return service


def submit_background_sync(app, student_id: int, service: SyncService = None) -> threading.Thread:
    """Re-sync a student in a daemon thread, at most once, best effort.

    The caller does not wait: errors are logged and never reach it.
    """

    def _run():
        with app.app_context():
            try:
                student = db.session.get(Student, student_id)
                if student is None:
                    logger.warning(f"Background sync skipped: student {student_id} is gone")
                    return
                outcome = (service or get_sync_service(app)).sync(SyncTarget.from_student(student))
                if not outcome.success:
                    logger.error(
                        f"Background sync failed for student {student_id}: {outcome.error}"
                    )
            except Exception:
                logger.exception(f"Background sync crashed for student {student_id}")
            finally:
                db.session.remove()

    t = threading.Thread(target=_run, daemon=True, name=f'resync-{student_id}')
    t.start()
    return t
