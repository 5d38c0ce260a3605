"""Base repository with common CRUD operations."""
import logging
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from contract_assistant.core.database import Base
from contract_assistant.core.errors import PersistenceError

ModelType = TypeVar("ModelType", bound=Base)

logger = logging.getLogger(__name__)


class BaseRepository(Generic[ModelType]):
    """Generic base repository for common database operations."""

    def __init__(self, model: Type[ModelType], session: Session):
        """Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Database session
        """
        self.model = model
        self.session = session

    def get_by_id(self, id: Any) -> Optional[ModelType]:
        """Get model by primary key ID.

        Args:
            id: Primary key value

        Returns:
            Model instance or None if not found
        """
        result = self.session.execute(select(self.model).filter(self.model.id == id))
        return result.scalar_one_or_none()

    def commit(self) -> None:
        """Commit the session, rolling back and raising PersistenceError on failure."""
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Commit failed for {self.model.__name__}: {e}")
            raise PersistenceError(f"Failed to save {self.model.__name__}: {e}") from e
