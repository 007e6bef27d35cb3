from .user import User
from .student import Student
from .contest_record import ContestRecord
from .problem_solve_record import ProblemSolveRecord

__all__ = [
    'User',
    'Student',
    'ContestRecord',
    'ProblemSolveRecord',
]
