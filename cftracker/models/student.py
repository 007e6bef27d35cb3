from __future__ import annotations

from datetime import datetime

from cftracker.extensions import db


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


class Student(db.Model):
    """A student whose Codeforces progress is tracked.

    Only the sync engine writes ``current_rating``, ``max_rating`` and
    ``last_synced``; every other column belongs to the admin CRUD layer.
    """

    __tablename__ = 'student'

    # Fields an admin may set through the API
    EDITABLE_FIELDS = ('name', 'email', 'phone', 'handle', 'email_notifications')

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    phone = db.Column(db.String(40), nullable=True)
    handle = db.Column(db.String(64), unique=True, nullable=False, index=True)
    current_rating = db.Column(db.Integer, nullable=False, default=0)
    max_rating = db.Column(db.Integer, nullable=False, default=0)
    last_synced = db.Column(db.DateTime, nullable=True)
    email_notifications = db.Column(db.Boolean, nullable=False, default=True)
    reminders_sent = db.Column(db.Integer, nullable=False, default=0)
    last_reminder_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    # Relationships
    contests = db.relationship(
        'ContestRecord',
        back_populates='student',
        cascade='all, delete-orphan',
        lazy='dynamic',
    )
    problems = db.relationship(
        'ProblemSolveRecord',
        back_populates='student',
        cascade='all, delete-orphan',
        lazy='dynamic',
    )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'handle': self.handle,
            'current_rating': self.current_rating,
            'max_rating': self.max_rating,
            'last_synced': _iso(self.last_synced),
            'email_notifications': self.email_notifications,
            'reminders_sent': self.reminders_sent,
            'last_reminder_at': _iso(self.last_reminder_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f'<Student {self.handle!r} (id={self.id})>'
