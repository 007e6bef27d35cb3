from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class AuthMode(str, Enum):
    SIGNED = 'signed'
    UNSIGNED = 'unsigned'


class CredentialsError(ValueError):
    """Raised when the API key or secret needed for signing is missing."""


@dataclass
class FetchResult:
    """Tagged outcome of one upstream call: payload on success, reason otherwise."""

    ok: bool
    data: Any = None
    error: str | None = None
    auth: AuthMode | None = None

    @classmethod
    def success(cls, data, auth: AuthMode | None = None) -> FetchResult:
        return cls(ok=True, data=data, auth=auth)

    @classmethod
    def failure(cls, error: str, auth: AuthMode | None = None) -> FetchResult:
        return cls(ok=False, error=error, auth=auth)


def _to_datetime(seconds) -> datetime | None:
    if seconds is None:
        return None
    return datetime.utcfromtimestamp(int(seconds))


@dataclass
class UserProfile:
    handle: str
    rating: int | None = None
    max_rating: int | None = None
    rank: str | None = None
    max_rank: str | None = None

    @classmethod
    def from_api(cls, raw: dict) -> UserProfile:
        return cls(
            handle=raw['handle'],
            rating=raw.get('rating'),
            max_rating=raw.get('maxRating'),
            rank=raw.get('rank'),
            max_rank=raw.get('maxRank'),
        )

    def to_dict(self) -> dict:
        return {
            'handle': self.handle,
            'rating': self.rating,
            'max_rating': self.max_rating,
            'rank': self.rank,
            'max_rank': self.max_rank,
        }


@dataclass
class RatingChange:
    contest_id: int
    contest_name: str | None
    rank: int | None
    old_rating: int
    new_rating: int
    updated_at: datetime | None = None

    @classmethod
    def from_api(cls, raw: dict) -> RatingChange:
        return cls(
            contest_id=int(raw['contestId']),
            contest_name=raw.get('contestName'),
            rank=raw.get('rank'),
            old_rating=int(raw.get('oldRating') or 0),
            new_rating=int(raw.get('newRating') or 0),
            updated_at=_to_datetime(raw.get('ratingUpdateTimeSeconds')),
        )

    @property
    def delta(self) -> int:
        return self.new_rating - self.old_rating


@dataclass
class UpstreamSubmission:
    submission_id: int | None
    contest_id: int | None
    problem_index: str
    problem_name: str | None
    verdict: str | None
    submitted_at: datetime | None
    problem_rating: int | None = None
    tags: list[str] = field(default_factory=list)
    problemset_name: str | None = None

    ACCEPTED = 'OK'

    @classmethod
    def from_api(cls, raw: dict) -> UpstreamSubmission:
        problem = raw['problem']
        return cls(
            submission_id=raw.get('id'),
            contest_id=problem.get('contestId', raw.get('contestId')),
            problem_index=str(problem['index']),
            problem_name=problem.get('name'),
            verdict=raw.get('verdict'),
            submitted_at=_to_datetime(raw.get('creationTimeSeconds')),
            problem_rating=problem.get('rating'),
            tags=list(problem.get('tags') or []),
            problemset_name=problem.get('problemsetName'),
        )

    @property
    def accepted(self) -> bool:
        return self.verdict == self.ACCEPTED

    @property
    def problem_key(self) -> str:
        """Problem identifier, ``"{contestId}-{index}"``."""
        prefix = self.contest_id if self.contest_id is not None else (self.problemset_name or '')
        return f'{prefix}-{self.problem_index}'

    def to_summary(self) -> dict:
        return {
            'problem_name': self.problem_name,
            'contest_id': self.contest_id,
            'index': self.problem_index,
            'verdict': self.verdict,
            'time': self.submitted_at.isoformat() if self.submitted_at else None,
            'rating': self.problem_rating,
        }
