import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from database import get_db
from main import app
from models.question import OptionItem, QuestionCreate
from routes.auth import get_current_user
from routes.questions import get_match_engine
from services.matcher import MatchEngine
from services.question_store import QuestionStore
from services.unanswered_log import UnansweredLog, get_unanswered_log

TEST_USER = {
    "id": "user-1",
    "NameOfStu": "Test Student",
    "StuID": "stu001",
    "isActive": True,
    "lastLogin": None,
}


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def db():
    """A fresh in-memory Mongo database per test."""
    return AsyncMongoMockClient()["quiz_test_db"]


@pytest.fixture
def store(db):
    return QuestionStore(db.questions)


@pytest.fixture
def engine(store):
    # mongomock has no $text support
    return MatchEngine(store, full_text_search=False)


@pytest.fixture
def unanswered_log(tmp_path):
    return UnansweredLog(str(tmp_path / "unanswered_questions.jsonl"))


def make_question(**fields) -> QuestionCreate:
    """Build a create payload; options/answers may be given as plain strings."""
    for key in ("options", "correctAnswers"):
        if key in fields:
            fields[key] = [OptionItem(text=v) if isinstance(v, str) else v for v in fields[key]]
    return QuestionCreate(**fields)


@pytest.fixture
def api_client(db, unanswered_log):
    """Client with storage overridden but real access-key authentication."""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_unanswered_log] = lambda: unanswered_log
    app.dependency_overrides[get_match_engine] = lambda: MatchEngine(QuestionStore(db.questions), full_text_search=False)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def client(api_client):
    """Client that is already authenticated as TEST_USER."""
    app.dependency_overrides[get_current_user] = lambda: dict(TEST_USER)
    return api_client
