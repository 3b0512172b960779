import copy
import os
import sys
import threading
import pytest

# Ensure the backend root (containing the `foresight` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from foresight import create_app, db, socketio
from foresight.services.sessions.errors import PersistenceDegraded
from foresight.services.sessions.registry import SessionRegistry


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DEFAULT_CAPACITY = 5
    MAX_CAPACITY = 12
    SESSION_CODE_LENGTH = 6
    SPECTATOR_FALLBACK = True
    INACTIVITY_TTL_SEC = 120
    REAPER_INTERVAL_SEC = 60


class MemoryStore:
    """Dict-backed stand-in for the SQL store; can be switched offline."""

    def __init__(self):
        self.documents = {}
        self.offline = False
        self.saves = 0
        self._lock = threading.Lock()

    def load(self, code):
        if self.offline:
            raise PersistenceDegraded('store offline')
        with self._lock:
            return copy.deepcopy(self.documents.get(code.upper()))

    def save(self, document):
        if self.offline:
            raise PersistenceDegraded('store offline')
        with self._lock:
            self.saves += 1
            current = self.documents.get(document['code'])
            if current and current['version'] >= document['version']:
                return False
            self.documents[document['code']] = copy.deepcopy(document)
            return True

    def find_expired_candidates(self, cutoff):
        if self.offline:
            raise PersistenceDegraded('store offline')
        with self._lock:
            return [
                copy.deepcopy(doc) for doc in self.documents.values()
                if doc.get('oldest_pending_join') is not None and doc['oldest_pending_join'] < cutoff
            ]


class RecordingBus:
    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def publish(self, code, event, payload):
        with self._lock:
            self.events.append((code, event, payload))

    def named(self, event):
        return [payload for _, name, payload in self.events if name == event]


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import foresight.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def bus():
    return RecordingBus()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def registry(store, bus, clock):
    return SessionRegistry(store, bus, clock=clock)
