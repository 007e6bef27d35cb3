from __future__ import annotations

from cftracker.extensions import db


class ContestRecord(db.Model):
    """One rated contest a student took part in.

    Rows are owned by the sync engine and replaced wholesale on every
    successful sync.
    """

    __tablename__ = 'contest_record'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(
        db.Integer, db.ForeignKey('student.id', ondelete='CASCADE'),
        nullable=False, index=True,
    )
    contest_id = db.Column(db.Integer, nullable=False)
    contest_name = db.Column(db.String(255), nullable=True)
    rank = db.Column(db.Integer, nullable=True)
    old_rating = db.Column(db.Integer, nullable=False, default=0)
    new_rating = db.Column(db.Integer, nullable=False, default=0)
    rating_change = db.Column(db.Integer, nullable=False, default=0)
    date = db.Column(db.DateTime, nullable=True, index=True)
    # Problems of this contest attempted but never accepted
    problems_unsolved = db.Column(db.Integer, nullable=False, default=0)

    student = db.relationship('Student', back_populates='contests')

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'student_id': self.student_id,
            'contest_id': self.contest_id,
            'contest_name': self.contest_name,
            'rank': self.rank,
            'old_rating': self.old_rating,
            'new_rating': self.new_rating,
            'rating_change': self.rating_change,
            'date': self.date.isoformat() if self.date else None,
            'problems_unsolved': self.problems_unsolved,
        }

    def __repr__(self) -> str:
        return (
            f'<ContestRecord {self.contest_id} '
            f'(student_id={self.student_id}, rank={self.rank})>'
        )
