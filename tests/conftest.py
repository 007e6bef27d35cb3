"""Shared test fixtures for the CF Tracker test suite."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
import requests

from cftracker import create_app
from cftracker.codeforces import CodeforcesClient
from cftracker.extensions import db as _db
from cftracker.models import User, Student, ContestRecord, ProblemSolveRecord
from cftracker.services.sync_service import SyncService
from cftracker.tasks.scheduler import get_scheduler

# Fixed upstream timestamps (seconds), newest first like the real API
T_NEWEST = 1_700_000_300
T_MIDDLE = 1_700_000_200
T_OLDEST = 1_700_000_100


def _submission(sub_id, contest_id, index, verdict, created, rating=None, tags=None,
                name=None):
    return {
        'id': sub_id,
        'contestId': contest_id,
        'creationTimeSeconds': created,
        'problem': {
            'contestId': contest_id,
            'index': index,
            'name': name or f'Problem {contest_id}{index}',
            'rating': rating,
            'tags': tags or [],
        },
        'author': {'participantType': 'CONTESTANT'},
        'verdict': verdict,
    }


def profile_body(handle='tourist', rating=3500, max_rating=3800):
    user = {'handle': handle, 'rank': 'legendary grandmaster',
            'maxRank': 'legendary grandmaster'}
    if rating is not None:
        user['rating'] = rating
    if max_rating is not None:
        user['maxRating'] = max_rating
    return {'status': 'OK', 'result': [user]}


def rating_body():
    return {'status': 'OK', 'result': [
        {'contestId': 1000, 'contestName': 'Round 1000', 'handle': 'tourist',
         'rank': 5, 'ratingUpdateTimeSeconds': T_OLDEST,
         'oldRating': 1500, 'newRating': 1650},
        {'contestId': 1001, 'contestName': 'Round 1001', 'handle': 'tourist',
         'rank': 120, 'ratingUpdateTimeSeconds': T_MIDDLE,
         'oldRating': 1650, 'newRating': 1600},
        {'contestId': 1002, 'contestName': 'Round 1002', 'handle': 'tourist',
         'rank': 1, 'ratingUpdateTimeSeconds': T_NEWEST,
         'oldRating': 1600, 'newRating': 1800},
    ]}


def status_body():
    """Submissions: 1000A accepted three times, 1000B never, 1001A once."""
    return {'status': 'OK', 'result': [
        _submission(9, 1000, 'A', 'OK', T_NEWEST, rating=800, tags=['math']),
        _submission(8, 1001, 'A', 'OK', T_NEWEST - 10, rating=1200, tags=['greedy', 'sortings']),
        _submission(7, 1000, 'A', 'OK', T_MIDDLE, rating=800, tags=['math']),
        _submission(6, 1000, 'B', 'WRONG_ANSWER', T_MIDDLE - 10, rating=1400),
        _submission(5, 1000, 'A', 'OK', T_OLDEST, rating=800, tags=['math']),
        _submission(4, 1000, 'A', 'TIME_LIMIT_EXCEEDED', T_OLDEST - 10, rating=800),
    ]}


def make_response(body, status_code=200):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = body
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(
            f'{status_code} Client Error', response=resp,
        )
    else:
        resp.raise_for_status.return_value = None
    return resp


class FakeSession:
    """Stand-in for ``requests.Session`` answering Codeforces methods.

    ``responses`` maps ``method`` or ``(method, 'signed'|'unsigned')`` to a
    body, a ``(status_code, body)`` tuple, or an exception to raise.
    """

    def __init__(self, responses=None):
        self.responses = {
            'user.info': profile_body(),
            'user.rating': rating_body(),
            'user.status': status_body(),
        }
        self.responses.update(responses or {})
        self.calls = []

    def get(self, url, params=None, timeout=None):
        method = url.rsplit('/', 1)[-1]
        params = dict(params or {})
        mode = 'signed' if 'apiSig' in params else 'unsigned'
        self.calls.append({'method': method, 'mode': mode, 'params': params,
                           'timeout': timeout})
        entry = self.responses.get((method, mode), self.responses.get(method))
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, tuple):
            return make_response(entry[1], entry[0])
        return make_response(entry)

    def modes(self, method):
        return [c['mode'] for c in self.calls if c['method'] == method]


@pytest.fixture()
def app():
    """Create a Flask application configured for testing."""
    application = create_app('testing')
    yield application
    get_scheduler(application).shutdown()


@pytest.fixture()
def db(app):
    """Provide a clean database for each test."""
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture()
def client(app, db):
    """Provide a Flask test client."""
    return app.test_client()


@pytest.fixture()
def auth_client(app, db, client):
    """Provide a test client logged in as an admin."""
    user = User(username='admin', email='admin@example.com')
    user.set_password('adminpass123')
    db.session.add(user)
    db.session.commit()

    client.post('/auth/login', json={
        'username': 'admin',
        'password': 'adminpass123',
    })
    return client


@pytest.fixture()
def fake_session():
    return FakeSession()


@pytest.fixture()
def cf_client(fake_session):
    return CodeforcesClient(
        api_key='test-key', api_secret='test-secret', session=fake_session,
    )


@pytest.fixture()
def sync_service(app, cf_client):
    """SyncService wired to the fake session and installed app-wide."""
    service = SyncService(client=cf_client)
    app.extensions['sync_service'] = service
    return service


@pytest.fixture()
def sample_data(app, db):
    """A student with one stale synced snapshot.

    Returns plain IDs so they survive across request context boundaries.
    """
    now = datetime.utcnow()
    student = Student(
        name='Gennady',
        email='gennady@example.com',
        handle='tourist',
        current_rating=1000,
        max_rating=1200,
        last_synced=now - timedelta(days=3),
    )
    db.session.add(student)
    db.session.flush()

    old_contest = ContestRecord(
        student_id=student.id,
        contest_id=1,
        contest_name='Old Round',
        rank=900,
        old_rating=1200,
        new_rating=1000,
        rating_change=-200,
        date=now - timedelta(days=300),
    )
    old_problem = ProblemSolveRecord(
        student_id=student.id,
        problem_id='1-A',
        problem_name='Old Problem',
        rating=800,
        date_solved=now - timedelta(days=30),
    )
    old_problem.tags = ['implementation']
    db.session.add_all([old_contest, old_problem])
    db.session.commit()

    return {
        'student_id': student.id,
        'contest_id': old_contest.id,
        'problem_id': old_problem.id,
    }
