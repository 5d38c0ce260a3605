"""Request-scoped dependencies shared by the v1 endpoints."""
from typing import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from contract_assistant.queue.base import QueueBackend
from contract_assistant.services.submission import SubmissionService, Submitter


def get_session(request: Request) -> Generator[Session, None, None]:
    """Database session for one request, closed afterwards."""
    session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


def get_queue(request: Request) -> QueueBackend:
    return request.app.state.queue


def get_submitter(
    session: Session = Depends(get_session),
    queue: QueueBackend = Depends(get_queue),
) -> Submitter:
    return SubmissionService(session, queue)
