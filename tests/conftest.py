import heapq
import os
import random

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("DEPOSIT_PASSWORD", "letmein")

import pytest
from fastapi.testclient import TestClient

from voiceroom.app import app
from voiceroom.db import Base, SessionLocal, engine
from voiceroom.hub import RoomHub
from voiceroom.models import Gift, Room, RoomSeat, User
from voiceroom.schemas import GameSettings
from voiceroom.security import COOKIE_NAME, make_jwt


class ManualHandle:
    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Deterministic clock: timers only fire inside advance()."""

    def __init__(self):
        self.clock = 0.0
        self._queue = []
        self._seq = 0

    def now(self):
        return self.clock

    def call_later(self, delay, callback, *args):
        handle = ManualHandle(self.clock + delay, callback, args)
        heapq.heappush(self._queue, (handle.when, self._seq, handle))
        self._seq += 1
        return handle

    def advance(self, seconds):
        target = self.clock + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            self.clock = when
            if not handle.cancelled:
                handle.callback(*handle.args)
        self.clock = target


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def settings():
    return GameSettings()


@pytest.fixture
def hub(scheduler, settings, rng):
    h = RoomHub(scheduler=scheduler, session_factory=SessionLocal, settings=settings, rng=rng)
    yield h
    h.shutdown()


@pytest.fixture
def client(hub):
    previous = app.state.hub
    app.state.hub = hub
    with TestClient(app) as c:
        yield c
    app.state.hub = previous


@pytest.fixture
def make_user(db):
    def _make(username, coins=0):
        user = User(username=username, coins=coins)
        db.add(user)
        db.commit()
        return user.id
    return _make


@pytest.fixture
def make_gift(db):
    def _make(gift_id="rose", cost=1000, is_lucky=False, name=None):
        gift = Gift(id=gift_id, name=name or gift_id.title(), cost=cost, is_lucky=is_lucky, animation_kind="standard")
        db.add(gift)
        db.commit()
        return gift_id
    return _make


@pytest.fixture
def make_room(db):
    def _make(host_id, title="Night Talk", seated=()):
        room = Room(title=title, host_id=host_id)
        db.add(room)
        db.flush()
        for index, user_id in enumerate(seated):
            db.add(RoomSeat(room_id=room.id, user_id=user_id, seat_index=index))
        db.commit()
        return room.id
    return _make


@pytest.fixture
def login(client):
    def _login(user_id):
        client.cookies.set(COOKIE_NAME, make_jwt(user_id))
    return _login
