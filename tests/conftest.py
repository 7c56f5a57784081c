import itertools
import os
import sys
import pytest

# Ensure the project root (containing the `guessgame` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from guessgame import create_app, db, socketio
from guessgame.services.sessions import SessionEngine, SessionStore


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False


class ManualScheduler:
    """Round scheduler driven by a virtual clock.

    Timers fire only from ``advance``. With ``honor_cancel=False`` cancelled
    timers still fire, which exercises the engine's status re-check.
    """

    def __init__(self, honor_cancel=True):
        self.now = 0.0
        self.honor_cancel = honor_cancel
        self.cancelled = []
        self._timers = {}
        self._seq = itertools.count()

    def schedule(self, key, delay, callback):
        self._timers[key] = (self.now + delay, next(self._seq), callback)
        return key

    def cancel(self, key):
        self.cancelled.append(key)
        if not self.honor_cancel:
            return False
        return self._timers.pop(key, None) is not None

    def pending(self):
        return sorted(self._timers)

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [(deadline, seq, key) for key, (deadline, seq, _) in self._timers.items() if deadline <= target]
            if not due:
                break
            deadline, _, key = min(due)
            _, _, callback = self._timers.pop(key)
            self.now = deadline
            callback()
        self.now = target


class RecordingTransport:
    def __init__(self):
        self.subscriptions = []
        self.broadcasts = []
        self.sends = []

    def subscribe(self, connection_id, session_id):
        self.subscriptions.append((connection_id, session_id))

    def broadcast(self, session_id, event, payload):
        self.broadcasts.append((session_id, event, payload))

    def send(self, connection_id, event, payload):
        self.sends.append((connection_id, event, payload))

    def broadcast_payloads(self, event, session_id=None):
        return [p for s, e, p in self.broadcasts if e == event and (session_id is None or s == session_id)]

    def sent_to(self, connection_id, event=None):
        return [p for c, e, p in self.sends if c == connection_id and (event is None or e == event)]


class MemoryUserStore:
    def __init__(self):
        self.users = {}
        self.fail_upsert = False
        self.fail_score = False
        self.score_calls = []
        self._ids = itertools.count(1)

    def upsert_user(self, username):
        if self.fail_upsert:
            raise RuntimeError('user store unavailable')
        if username not in self.users:
            self.users[username] = {'id': next(self._ids), 'username': username, 'score': 0}
        return dict(self.users[username])

    def add_score(self, user_id, delta):
        self.score_calls.append((user_id, delta))
        if self.fail_score:
            raise RuntimeError('score store unavailable')
        for user in self.users.values():
            if user['id'] == user_id:
                user['score'] += delta

    def score(self, username):
        return self.users[username]['score']


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def transport():
    return RecordingTransport()


@pytest.fixture()
def users():
    return MemoryUserStore()


@pytest.fixture()
def store():
    return SessionStore()


@pytest.fixture()
def engine(store, transport, users, scheduler):
    return SessionEngine(store=store, transport=transport, users=users, scheduler=scheduler)


@pytest.fixture()
def flask_app(scheduler):
    application = create_app(TestConfig, scheduler=scheduler)
    with application.app_context():
        # Ensure models are imported so tables are created
        import guessgame.models  # noqa: F401
        db.create_all()
        yield application
        application.extensions['session_engine'].shutdown()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_clients(flask_app):
    """Factory for Socket.IO test clients; all are disconnected on teardown."""
    created = []

    def _make():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        created.append(test_client)
        return test_client

    yield _make
    for test_client in created:
        if test_client.is_connected():
            test_client.disconnect()


@pytest.fixture()
def sio_client(sio_clients):
    return sio_clients()
