import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ENCRYPTION_KEY", "0" * 64)

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from orderdesk.database import Base
from orderdesk.models import BotIntegration, Branch, Business, DiningTable
from orderdesk.services.credential_store import CredentialStore

TEST_KEY = "a" * 64


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def credential_store():
    return CredentialStore(TEST_KEY)


@pytest.fixture
def make_business(db_session):
    def _make(**kwargs):
        values = {
            "id": uuid.uuid4(),
            "name": "Pasta Place",
            "contract_status": "approved",
            "chatbot_enabled": True,
            "created_at": datetime.now(timezone.utc),
        }
        values.update(kwargs)
        business = Business(**values)
        db_session.add(business)
        db_session.commit()
        return business

    return _make


@pytest.fixture
def make_branch(db_session):
    def _make(business, **kwargs):
        values = {"id": uuid.uuid4(), "business_id": business.id, "name": "Main", "chatbot_enabled": True}
        values.update(kwargs)
        branch = Branch(**values)
        db_session.add(branch)
        db_session.commit()
        return branch

    return _make


@pytest.fixture
def make_integration(db_session, credential_store):
    def _make(owner, owner_type="business", platform="whatsapp", external_id="1000", token="secret-token", **kwargs):
        values = {
            "id": uuid.uuid4(),
            "owner_type": owner_type,
            "owner_id": owner.id,
            "platform": platform,
            "external_id": external_id,
            "access_token_encrypted": credential_store.encrypt(token) if token else None,
            "config": {},
            "enabled": True,
        }
        values.update(kwargs)
        integration = BotIntegration(**values)
        db_session.add(integration)
        db_session.commit()
        return integration

    return _make


@pytest.fixture
def make_table(db_session):
    def _make(business, **kwargs):
        values = {"id": uuid.uuid4(), "business_id": business.id, "name": "T1", "capacity": 4}
        values.update(kwargs)
        table = DiningTable(**values)
        db_session.add(table)
        db_session.commit()
        return table

    return _make


class FakeClock:
    """Settable clock for TTL tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))
