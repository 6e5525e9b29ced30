# passkit/repositories/base.py

"""
Base Repository for Data Access.

Provides a generic repository pattern implementation with common
CRUD operations. Pass-family tables are owned by a tenant, so their
repositories extend TenantScopedRepository, which takes the tenant id as an
explicit argument on every read instead of relying on an ambient query scope.
"""

from abc import ABC
from typing import Generic, TypeVar, List, Optional, Type, Tuple
from sqlalchemy.orm import Session, Query


T = TypeVar('T')


class BaseRepository(ABC, Generic[T]):
    """
    Generic base repository with common CRUD operations.

    Subclasses should specify the model class and can add
    domain-specific query methods.
    """

    def __init__(self, session: Session, model_class: Type[T]):
        """
        Initialize repository with session and model class.

        Args:
            session: SQLAlchemy session for database operations
            model_class: The SQLAlchemy model class this repository manages
        """
        self.session = session
        self.model_class = model_class

    # ==================== Basic CRUD Operations ====================

    def add(self, entity: T) -> T:
        """Add a new entity to the session."""
        self.session.add(entity)
        return entity

    def delete(self, entity: T) -> None:
        """Delete an entity from the session."""
        self.session.delete(entity)

    def query(self) -> Query:
        """Get a base query for the model. Use for complex queries."""
        return self.session.query(self.model_class)

    # ==================== Pagination ====================

    def _paginate(self, query: Query, page: int = 1, per_page: int = 20) -> Tuple[List[T], int]:
        """
        Apply offset pagination to a prepared query.

        Returns:
            Tuple of (items list, total count)
        """
        total = query.order_by(None).count()
        offset = (max(page, 1) - 1) * per_page
        items = query.offset(offset).limit(per_page).all()
        return items, total

    # ==================== Flush and Refresh ====================

    def flush(self) -> None:
        """Flush pending changes to database without committing."""
        self.session.flush()

    def refresh(self, entity: T) -> T:
        """Refresh entity from database."""
        self.session.refresh(entity)
        return entity


class TenantScopedRepository(BaseRepository[T]):
    """
    Repository whose every read is filtered by an explicit tenant predicate.

    The model must expose a ``user_id`` column naming the owning tenant.
    """

    def scoped(self, tenant_id: int) -> Query:
        """Base query restricted to one tenant's rows."""
        if tenant_id is None:
            raise ValueError(f"{self.model_class.__name__} queries require a tenant id")
        return self.session.query(self.model_class).filter(self.model_class.user_id == tenant_id)

    def get_for_tenant(self, tenant_id: int, id: int) -> Optional[T]:
        """Get entity by primary key, or None if it belongs to another tenant."""
        return self.scoped(tenant_id).filter(self.model_class.id == id).first()
