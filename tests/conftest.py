import pytest
from fastapi.testclient import TestClient

from studysphere.config import Settings
from studysphere.main import create_app
from studysphere.sessions import SessionManager

TEACHER = "teacher@example.com"
STUDENT = "student@example.com"
PASSWORD = "password123"
COOKIE = "studysphere.sid"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def login(client, username, password=PASSWORD):
    return client.post("/api/auth/login", json={"username": username, "password": password})


def course_by_title(client, title):
    return next(c for c in client.get("/api/courses").json() if c["title"] == title)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment="test",
        data_dir=str(tmp_path / "data"),
        upload_dir=str(tmp_path / "uploads"),
        session_secret="test-secret",
        session_rotation_probability=0.0,
        max_upload_bytes=1024,
    )


@pytest.fixture
def sessions(settings, clock):
    return SessionManager.from_settings(settings, clock=clock)


@pytest.fixture
def app(settings, sessions):
    return create_app(settings=settings, sessions=sessions)


@pytest.fixture
def client(app):
    # entering the context runs the lifespan, which connects and seeds storage
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_client(app, client):
    def _make(**kwargs):
        return TestClient(app, **kwargs)

    return _make


@pytest.fixture
def teacher(make_client):
    c = make_client()
    assert login(c, TEACHER).status_code == 200
    return c


@pytest.fixture
def student(make_client):
    c = make_client()
    assert login(c, STUDENT).status_code == 200
    return c
