import json

from cftracker.extensions import db


class ProblemSolveRecord(db.Model):
    """First accepted solve of a distinct problem by a student."""

    __tablename__ = 'problem_solve_record'
    __table_args__ = (
        db.UniqueConstraint(
            'student_id', 'problem_id',
            name='uq_problem_solve_student_problem',
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(
        db.Integer, db.ForeignKey('student.id', ondelete='CASCADE'),
        nullable=False, index=True,
    )
    problem_id = db.Column(db.String(50), nullable=False)  # "{contestId}-{index}"
    problem_name = db.Column(db.String(255), nullable=True)
    rating = db.Column(db.Integer, nullable=True)
    date_solved = db.Column(db.DateTime, nullable=False, index=True)
    tags_json = db.Column(db.Text, nullable=True)

    student = db.relationship('Student', back_populates='problems')

    @property
    def tags(self):
        """Parse tags_json into a list."""
        if self.tags_json:
            try:
                return json.loads(self.tags_json)
            except (json.JSONDecodeError, TypeError):
                return []
        return []

    @tags.setter
    def tags(self, value):
        self.tags_json = json.dumps(list(value), ensure_ascii=False) if value else None

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'problem_id': self.problem_id,
            'problem_name': self.problem_name,
            'rating': self.rating,
            'date_solved': self.date_solved.isoformat() if self.date_solved else None,
            'tags': self.tags,
        }

    def __repr__(self):
        return f'<ProblemSolveRecord {self.problem_id} (student_id={self.student_id})>'
