"""
Base Repository implementation.
Provides common data access patterns. Repositories flush; services commit.
"""

from abc import ABC, abstractmethod
from typing import TypeVar, Generic
from sqlalchemy.orm import Session
from sqlalchemy import Select


ModelT = TypeVar("ModelT")


class BaseRepository(ABC, Generic[ModelT]):
    """
    Abstract base repository with common operations.

    Subclasses must implement:
    - model: Return the SQLAlchemy model class
    - _base_query(): Return base query with eager loading
    """

    def __init__(self, db: Session):
        self._db = db

    @property
    @abstractmethod
    def model(self) -> type[ModelT]:
        """Return the SQLAlchemy model class."""
        ...

    @abstractmethod
    def _base_query(self) -> Select:
        """
        Return base query with proper eager loading.
        Subclasses must implement this with selectinload/joinedload.
        """
        ...

    def find_by_id(self, entity_id: int, populate_existing: bool = False) -> ModelT | None:
        """
        Find entity by ID.

        Args:
            entity_id: Entity ID
            populate_existing: Overwrite any copy already in the session
                with the row as it is now in the database

        Returns:
            Entity or None
        """
        query = self._base_query().where(self.model.id == entity_id)
        if populate_existing:
            query = query.execution_options(populate_existing=True)
        return self._db.scalar(query)

    def delete(self, entity: ModelT) -> None:
        """Hard delete entity."""
        self._db.delete(entity)
        self._db.flush()
