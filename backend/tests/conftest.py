"""Pytest configuration and fixtures."""
import io
import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, Generator, List, Optional

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["OPENAI_API_KEY"] = ""
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"

import pytest
from docx import Document as DocxDocument
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import Session

import contract_assistant.workers.tasks  # noqa: F401
from contract_assistant.core import database
from contract_assistant.core.database import Base, make_engine, make_session_factory
from contract_assistant.core.errors import NotFoundError
from contract_assistant.db.models import Document
from contract_assistant.main import create_app
from contract_assistant.queue.celery_backend import CeleryQueueBackend
from contract_assistant.queue.payloads import ANALYZE_DOCUMENT
from contract_assistant.services.inference import InferenceClient
from contract_assistant.services.storage import FileStorage
from contract_assistant.workers.celery_app import celery_app

TEST_USER_ID = "user-1"
OTHER_USER_ID = "user-2"

VALID_ANALYSIS = """{
  "summary": "Standard office lease with an aggressive termination clause.",
  "riskLevel": "high",
  "risks": [
    {
      "title": "Unilateral termination",
      "description": "The landlord may terminate with 7 days notice.",
      "severity": "high",
      "category": "legal",
      "suggestion": "Negotiate a 90 day notice period.",
      "clauseRef": "12.3"
    },
    {
      "title": "Uncapped service charge",
      "description": "Service charges have no annual cap.",
      "severity": "medium"
    }
  ],
  "keyTerms": [
    {"title": "Rent", "content": "2,000 per month", "importance": "critical"}
  ],
  "recommendations": ["Ask for a break clause"],
  "contractInfo": {"type": "Lease", "parties": ["Landlord Ltd", "Tenant GmbH"]}
}"""


class FakeClock:
    """Controllable clock for the queue backend."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class InMemoryStorage(FileStorage):
    def __init__(self):
        self.files: Dict[str, bytes] = {}

    def read(self, locator: str) -> bytes:
        if locator not in self.files:
            raise NotFoundError(f"File not found: {locator}")
        return self.files[locator]

    def write(self, locator: str, data: bytes) -> None:
        self.files[locator] = data

    def exists(self, locator: str) -> bool:
        return locator in self.files


class FakeChatCompletions:
    """Stands in for ``OpenAI().chat.completions``."""

    def __init__(self):
        self.responses: List[object] = []
        self.calls: List[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=response))])


class FakeOpenAI:
    def __init__(self, *responses):
        self.completions = FakeChatCompletions()
        self.completions.responses = list(responses) or [VALID_ANALYSIS]
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self) -> List[dict]:
        return self.completions.calls


class TaskRecorder:
    """Stands in for the broker: records sent tasks and runs them eagerly on demand."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.pending: List[Dict[str, Any]] = []
        self.results: List[Any] = []

    def send_task(self, name, args=None, kwargs=None, **options):
        message = {"name": name, "kwargs": dict(kwargs or {}), **options}
        self.sent.append(message)
        self.pending.append(message)
        return SimpleNamespace(id=options.get("task_id"))

    def run_all(self) -> List[Any]:
        """Execute queued tasks in send order; retries run inline with Celery's eager retry."""
        while self.pending:
            message = self.pending.pop(0)
            task = celery_app.tasks[message["name"]]
            outcome = task.apply(kwargs=message["kwargs"], task_id=message["task_id"], retries=0)
            self.results.append(outcome.result)
        return self.results


def make_docx(*paragraphs: str) -> bytes:
    doc = DocxDocument()
    for paragraph in paragraphs:
        doc.add_paragraph(paragraph)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def auth_headers(user_id: str = TEST_USER_ID) -> Dict[str, str]:
    token = jwt.encode({"sub": user_id}, "test-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def engine(tmp_path):
    """Fresh SQLite database file for each test."""
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def task_recorder(monkeypatch) -> TaskRecorder:
    recorder = TaskRecorder()
    monkeypatch.setattr(celery_app, "send_task", recorder.send_task)
    return recorder


@pytest.fixture
def queue(session_factory, clock, task_recorder) -> Generator[CeleryQueueBackend, None, None]:
    backend = CeleryQueueBackend(session_factory, "analysis-queue", celery_app, clock=clock)
    backend.start()
    yield backend
    backend.close()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def openai_client() -> FakeOpenAI:
    return FakeOpenAI(VALID_ANALYSIS)


@pytest.fixture
def inference(openai_client) -> InferenceClient:
    return InferenceClient(api_key="test-key", client=openai_client)


@pytest.fixture
def worker(monkeypatch, session_factory, storage, inference, task_recorder) -> TaskRecorder:
    """Runs sent analysis tasks against the test database, storage and inference client."""
    monkeypatch.setattr(database, "SessionLocal", session_factory)
    task = celery_app.tasks[ANALYZE_DOCUMENT]
    monkeypatch.setattr(task, "storage", storage, raising=False)
    monkeypatch.setattr(task, "inference", inference, raising=False)
    return task_recorder


@pytest.fixture
def make_document(session_factory, storage) -> Callable[..., Document]:
    """Create a document row and store its bytes."""

    def _make(
        content: Optional[bytes] = None,
        mime_type: str = "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        file_name: str = "lease.docx",
        user_id: str = TEST_USER_ID,
    ) -> Document:
        data = content if content is not None else make_docx("This lease is made between Landlord Ltd and Tenant GmbH.")
        with session_factory() as session:
            document = Document(
                user_id=user_id,
                file_url=f"/uploads/contracts/{file_name}",
                file_name=file_name,
                mime_type=mime_type,
                size_bytes=len(data),
            )
            session.add(document)
            session.commit()
        storage.write(document.file_url, data)
        return document

    return _make


@pytest.fixture
def client(session_factory, queue) -> Generator[TestClient, None, None]:
    """Test client built from the app factory against the test database."""
    app = create_app(session_factory=session_factory, queue=queue)
    with TestClient(app) as test_client:
        yield test_client
