import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.core import init_db
from database.repo import DatabaseActions


@pytest.fixture
def db_actions():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield DatabaseActions(session_factory=factory)
    engine.dispose()


@pytest.fixture
def user_id(db_actions):
    created = db_actions.create_user_credentials("Asha", "asha@example.com", "asha", "not-a-real-hash")
    return created["user_id"]
