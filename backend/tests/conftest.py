"""
Shared fixtures: in-memory database, entity store, fake viewport and generator
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("USE_MOCK_AI", "true")

import uuid
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from topichat.config import Settings, get_settings
from topichat.database import Base, SessionLocal, engine, get_db
from topichat.dependencies import get_finder, get_generator, get_store
from topichat.errors import GenerationError
from topichat.models import Chatroom, Message, Participant, Profile
from topichat.services.articles import MockArticleFinder
from topichat.services.change_feed import ChangeFeed
from topichat.services.curators import ensure_curator_profile
from topichat.services.feed_sync import Viewport
from topichat.services.store import SqlEntityStore

CRON_SECRET = "test-cron-secret"


class FakeViewport(Viewport):
    """Every message renders as one row of fixed height"""

    ROW_HEIGHT = 20

    def __init__(self, client_height=200):
        self._client_height = client_height
        self._scroll_height = 0
        self._scroll_top = 0
        self.rendered = ()
        self.smooth_scrolls = 0

    @property
    def scroll_top(self):
        return self._scroll_top

    @property
    def scroll_height(self):
        return self._scroll_height

    @property
    def client_height(self):
        return self._client_height

    def render(self, messages):
        self.rendered = tuple(messages)
        self._scroll_height = len(messages) * self.ROW_HEIGHT

    def scroll_to(self, top, smooth=False):
        limit = max(self._scroll_height - self._client_height, 0)
        self._scroll_top = max(0, min(top, limit))
        if smooth:
            self.smooth_scrolls += 1

    def scroll_to_top(self):
        self._scroll_top = 0


class FakeGenerator:
    """Records prompts; raises for any prompt or instruction containing `fail_on`"""

    def __init__(self, reply="generated reply", fail_on=None):
        self.reply = reply
        self.fail_on = fail_on
        self.calls = []

    def generate(self, prompt, system_instruction=""):
        self.calls.append((prompt, system_instruction))
        if self.fail_on and (self.fail_on in prompt or self.fail_on in system_instruction):
            raise GenerationError(f"generation failed for {self.fail_on}")
        return self.reply


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        use_mock_ai=True,
        cron_secret=CRON_SECRET,
        curator_concurrency=4,
    )


@pytest.fixture
def db(settings):
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    ensure_curator_profile(session, settings)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def change_feed():
    return ChangeFeed()


@pytest.fixture
def store(db, change_feed):
    return SqlEntityStore(db, change_feed)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def viewport():
    return FakeViewport()


@pytest.fixture
def make_profile(db):
    def factory(nickname="tester", interests=None):
        profile = Profile(nickname=nickname, interests=interests or [])
        db.add(profile)
        db.commit()
        return profile
    return factory


@pytest.fixture
def make_room(db):
    def factory(name="건강 이야기", interest="건강", members=(), admins=(), **fields):
        room = Chatroom(name=name, interest=interest, **fields)
        db.add(room)
        db.flush()
        for user_id in members:
            db.add(Participant(chatroom_id=room.id, user_id=user_id))
        for user_id in admins:
            db.add(Participant(chatroom_id=room.id, user_id=user_id, is_admin=True))
        db.commit()
        return room
    return factory


@pytest.fixture
def seed_messages(db):
    """Insert `count` messages one minute apart, oldest first"""
    def factory(room, author_id, count, start=None, prefix="message"):
        start = start or datetime.utcnow() - timedelta(minutes=count + 1)
        messages = []
        for i in range(count):
            message = Message(
                chatroom_id=room.id,
                author_id=author_id,
                content=f"{prefix} {i}",
                created_at=start + timedelta(minutes=i),
            )
            db.add(message)
            messages.append(message)
        room.last_message_at = messages[-1].created_at if messages else None
        db.commit()
        return messages
    return factory


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def client(db, store, generator, settings):
    from main import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_generator] = lambda: generator
    app.dependency_overrides[get_finder] = lambda: MockArticleFinder()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
