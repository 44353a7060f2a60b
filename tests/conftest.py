"""Pytest configuration and fixtures."""

import os

# Settings are read at import time
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["MAIL_BACKEND"] = "console"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"

from datetime import datetime, timedelta
from http.cookies import SimpleCookie

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.requests import Request

import mailcode.models  # noqa: F401
from mailcode.database import Base, get_db
from mailcode.dependencies import get_clock, get_mailer
from mailcode.main import app
from mailcode.repositories.login_codes import SqlLoginCodeRepository
from mailcode.repositories.users import SqlUserRepository
from mailcode.services.auth_service import AuthService
from mailcode.services.email_service import DeliveryError
from mailcode.services.login_code_service import LoginCodeService
from mailcode.services.session_service import SessionService
from mailcode.services.token_service import TokenService
from mailcode.utils.timezone import utc_now


# Create test database
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    """Controllable naive-UTC clock."""

    def __init__(self, start: datetime = None):
        self.now = (start or utc_now()).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingMailer:
    """Keeps sent messages in memory; optionally fails every send."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, to_email: str, subject: str, body: str) -> None:
        if self.fail:
            raise DeliveryError("delivery disabled")
        self.sent.append((to_email, subject, body))

    @property
    def last_code(self) -> str:
        return self.sent[-1][2].split()[-1]


def make_request(path: str = "/", query: str = "", headers: dict = None,
                 cookies: dict = None, host: str = "testserver") -> Request:
    """Build a bare Starlette request for unit tests."""
    raw_headers = [(b"host", host.encode())]
    for key, value in (headers or {}).items():
        raw_headers.append((key.lower().encode(), value.encode()))
    if cookies:
        cookie = "; ".join(f"{key}={value}" for key, value in cookies.items())
        raw_headers.append((b"cookie", cookie.encode()))

    return Request({
        "type": "http",
        "method": "GET",
        "scheme": "https",
        "server": (host, 443),
        "root_path": "",
        "path": path,
        "query_string": query.encode(),
        "headers": raw_headers,
    })


def cookie_value(set_cookie_header: str, name: str) -> str:
    """Extract a cookie value from a Set-Cookie header."""
    jar = SimpleCookie()
    jar.load(set_cookie_header)
    return jar[name].value


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def users(db):
    return SqlUserRepository(db)


@pytest.fixture
def codes(db):
    return SqlLoginCodeRepository(db)


@pytest.fixture
def login_codes(users, codes, mailer, clock):
    """Login code engine over the test database."""
    return LoginCodeService(
        users,
        codes,
        mailer,
        site_name="Test Site",
        registration_fields=("name", "handle"),
        clock=clock,
    )


@pytest.fixture
def sessions(clock):
    return SessionService("test-session-secret", secure=False, clock=clock)


@pytest.fixture
def tokens(clock):
    return TokenService("test-jwt-secret", clock=clock)


@pytest.fixture
def gate(sessions, tokens):
    return AuthService(sessions, tokens)


@pytest.fixture
def sample_user(users):
    """Existing account with roles."""
    return users.create({"email": "alice@example.com", "roles": ["admin", "editor"], "name": "Alice"})


@pytest.fixture(scope="function")
def client(db, mailer, clock):
    """Create a test client with overridden database, mailer and clock."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_clock] = lambda: clock
    # https so Secure cookies round-trip through the client's jar
    with TestClient(app, base_url="https://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()
