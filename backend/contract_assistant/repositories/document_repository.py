"""Document repository."""
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from contract_assistant.core.errors import ForbiddenError, NotFoundError
from contract_assistant.db.models.document import DOCUMENT_STATUSES, Document
from contract_assistant.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)


class DocumentRepository(BaseRepository[Document]):
    """Repository for Document reads and lifecycle status changes."""

    def __init__(self, session: Session):
        super().__init__(Document, session)

    def get_owned(self, doc_id: str, user_id: str) -> Document:
        """Get a document the user owns.

        Raises:
            NotFoundError: Document does not exist
            ForbiddenError: Document belongs to another user
        """
        document = self.get_by_id(doc_id)

        if document is None:
            raise NotFoundError("Document not found")

        if document.user_id != user_id:
            raise ForbiddenError("You do not have permission to access this document")

        return document

    def set_status(self, doc_id: str, status: str, commit: bool = True) -> None:
        if status not in DOCUMENT_STATUSES:
            raise ValueError(f"Invalid document status: {status}")

        self.session.execute(
            update(Document)
            .where(Document.id == doc_id)
            .values(status=status)
            .execution_options(synchronize_session="fetch")
        )
        if commit:
            self.commit()

        logger.info(f"Document {doc_id} status -> {status}")
