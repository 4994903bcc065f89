"""
Shared fixtures: a fresh SQLite database per test, a fake transport and a
media resolver writing under tmp_path.
"""
import pytest
from sqlalchemy.orm import sessionmaker

from wa_logger.core.database import build_engine, create_tables
from wa_logger.models.message import Message
from wa_logger.pipeline.media import MediaResolver
from fakes.fake_transport import FakeTransport


@pytest.fixture
def engine(tmp_path):
    """Create a fresh test database for each test."""
    engine = build_engine(f"sqlite:///{tmp_path / 'test_messages.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def media_dir(tmp_path):
    return tmp_path / "media"


@pytest.fixture
def resolver(transport, media_dir):
    return MediaResolver(transport, str(media_dir))


@pytest.fixture
def recorded_sleeps():
    """A sleep function that records delays instead of waiting."""
    delays = []

    async def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def store_message(db):
    """Store a message row directly, bypassing classification."""

    def store(message_id: str, sender: str = "15551234567@s.whatsapp.net", **fields) -> Message:
        message = Message(
            message_id=message_id,
            sender=sender,
            sender_name=fields.pop("sender_name", "Alice"),
            message=fields.pop("message", "hello"),
            message_type=fields.pop("message_type", "text"),
            time=fields.pop("time", "2023-11-14 22:13:20"),
            **fields,
        )
        db.add(message)
        db.commit()
        return message

    return store
