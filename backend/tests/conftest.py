import os
import sys
import pytest

# Ensure the backend root (containing the `songquiz` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from songquiz import create_app, db, socketio
from songquiz.services.games import GameSettings, Room, RoomTimings, RoundItem, SongSelection, TimerHandle


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['http://localhost:5173']
    LOG_LEVEL = 'DEBUG'


class ManualScheduler:
    """Scheduler whose timers only fire when a test says so."""

    def __init__(self):
        self.timers = []

    def call_later(self, delay, callback, phase=''):
        handle = TimerHandle(phase, delay)
        self.timers.append((handle, callback))
        return handle

    @property
    def active(self):
        return [(h, cb) for h, cb in self.timers if h.active]

    @property
    def active_phases(self):
        return [h.phase for h, _ in self.active]

    def fire(self, phase=None):
        active = self.active
        assert active, 'no armed timer'
        handle, callback = active[0]
        if phase is not None:
            assert handle.phase == phase, f"armed timer is {handle.phase}, expected {phase}"
        handle.fired = True
        callback()
        return handle


class EventRecorder:
    """Collects what a room emits instead of sending it."""

    def __init__(self):
        self.events = []

    def __call__(self, event, payload, to=None):
        self.events.append((event, payload, to))

    def names(self):
        return [name for name, _, _ in self.events]

    def payloads(self, name):
        return [payload for event, payload, _ in self.events if event == name]

    def last(self, name):
        found = self.payloads(name)
        assert found, f"{name} was never emitted"
        return found[-1]

    def clear(self):
        self.events.clear()


def make_item(i, anime=None, franchise=None, accepted=None):
    anime = anime or f'Anime {i}'
    return RoundItem(
        song_id=i,
        anime=anime,
        accepted_answers=tuple(accepted or (anime,)),
        video_key=f'video-{i}',
        title=f'Song {i}',
        franchise=franchise,
    )


class FakeSongProvider:
    def __init__(self, items=None, fallback_used=False, fail=False, fail_choices=False):
        self.items = list(items) if items is not None else [make_item(i) for i in range(1, 11)]
        self.fallback_used = fallback_used
        self.fail = fail
        self.fail_choices = fail_choices
        self.requests = []

    def get_random_songs(self, count, filters=None):
        self.requests.append((count, filters))
        if self.fail:
            raise RuntimeError('catalog offline')
        return SongSelection(songs=self.items[:count], fallback_used=self.fallback_used)

    def generate_choices(self, target, precision, filters=None):
        if self.fail_choices:
            raise RuntimeError('catalog offline')
        return ['Decoy A', target, 'Decoy B', 'Decoy C']

    def generate_duo(self, target, choices):
        wrong = [c for c in choices if c != target]
        return [wrong[0], target]


class FakeStats:
    def __init__(self, fail=False):
        self.games = []
        self.fail = fail

    def record_game(self, players, winner_ids):
        if self.fail:
            raise RuntimeError('database down')
        self.games.append((players, list(winner_ids)))


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def events():
    return EventRecorder()


@pytest.fixture()
def provider():
    return FakeSongProvider()


@pytest.fixture()
def make_room(scheduler, events, provider):
    """Factory for a room with ``names`` already seated; the first one hosts."""

    def _make(names=('Alice', 'Bob'), round_count=3, stats=None, watchlists=None, clock=None, **settings):
        room = Room(
            'ROOM01', 'p1', GameSettings(round_count=round_count, **settings),
            scheduler=scheduler,
            emit=events,
            provider=provider,
            stats=stats,
            watchlists=watchlists,
            timings=RoomTimings(intro_delay=3, guess_buffer=0.5, reveal_duration=10, resume_countdown=3),
            clock=clock or FakeClock(),
        )
        for i, name in enumerate(names, 1):
            room.add_player(f'p{i}', name)
        events.clear()
        return room

    return _make


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        db.create_all()
        # Timers fire only when tests drive them
        application.extensions['room_registry'].scheduler = ManualScheduler()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def registry(flask_app):
    return flask_app.extensions['room_registry']


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
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')
