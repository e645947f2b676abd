from datetime import datetime, timedelta

import pytest

from shelfs_service.app import create_app
from shelfs_service.config import Config
from shelfs_service.database import make_engine, make_session_factory, init_db
from shelfs_service.repositories import (
    BookDefinitionRepository,
    BookItemRepository,
    UserRepository,
    LoanRepository,
)
from shelfs_service.catalog import BookService
from shelfs_service.patrons import UserService
from shelfs_service.loans import LoanService
from shelfs_service.errors import ResourceNotFound

API_KEY = "test-key"


class FakeClock:
    """Callable stand-in for datetime.now that only moves when told to."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 15, 10, 0, 0))


@pytest.fixture
def session(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'service.db'}")
    init_db(engine)
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def books(session, clock):
    return BookService(
        session,
        BookDefinitionRepository(session),
        BookItemRepository(session),
        LoanRepository(session),
        clock=clock,
    )


@pytest.fixture
def users(session):
    return UserService(session, UserRepository(session), LoanRepository(session))


@pytest.fixture
def loans(session, clock):
    return LoanService(
        session,
        LoanRepository(session),
        UserRepository(session),
        BookItemRepository(session),
        clock=clock,
    )


@pytest.fixture
def make_item(books):
    """Create a definition (once per ISBN) and a copy with the given barcode."""

    def _make(barcode, isbn="111", title="Foo"):
        try:
            definition = books.get_definition_by_isbn(isbn)
        except ResourceNotFound:
            definition = books.create_definition(isbn=isbn, title=title)
        return books.create_item(barcode=barcode, book_definition_id=definition.id)

    return _make


@pytest.fixture
def make_user(users):
    def _make(username="reader"):
        return users.create_user(
            username=username, email=f"{username}@example.com", password="s3cret"
        )

    return _make


@pytest.fixture
def app(tmp_path, clock):
    class TestConfig(Config):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'api.db'}"
        SERVICE_API_KEY = API_KEY
        LOG_LEVEL = "DEBUG"

    app = create_app(TestConfig, clock=clock)
    app.config["TESTING"] = True
    yield app
    app.extensions["shelfs"]["engine"].dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth():
    return {"X-API-Key": API_KEY}
