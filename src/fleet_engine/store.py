"""Entity store over a SQLAlchemy session.

The store is the only place that performs the conditional status update
used to serialize competing writers on the same row.
"""

from __future__ import annotations

from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from fleet_engine.errors import NotFound
from fleet_engine.models import Base

M = TypeVar("M", bound=Base)


class EntityStore:
    """CRUD helpers and compare-and-set over a single session."""

    def __init__(self, session: Session):
        if session is None:
            raise TypeError("EntityStore requires a session")
        self.session = session

    def get(self, model: type[M], entity_id: UUID) -> M | None:
        return self.session.get(model, entity_id)

    def require(self, model: type[M], entity_id: UUID) -> M:
        """Fetch an entity or raise NotFound."""
        entity = self.session.get(model, entity_id)
        if entity is None:
            raise NotFound(model.__tablename__, entity_id)
        return entity

    def add(self, entity: M) -> M:
        self.session.add(entity)
        self.session.flush()
        return entity

    def delete(self, entity: Base) -> None:
        self.session.delete(entity)
        self.session.flush()

    def find(self, model: type[M], *criteria: Any, order_by: Any = None) -> list[M]:
        query = select(model).where(*criteria)
        if order_by is not None:
            query = query.order_by(order_by)
        return list(self.session.scalars(query))

    def find_one(self, model: type[M], *criteria: Any) -> M | None:
        return self.session.scalars(select(model).where(*criteria)).first()

    def compare_and_set(
        self,
        model: type[M],
        entity_id: UUID,
        expected_status: str,
        values: dict[str, Any],
        status_column: str = "status",
    ) -> bool:
        """Apply ``values`` only if the row still has ``expected_status``.

        Returns True when exactly one row changed. The loaded instance, if
        any, is refreshed so callers see the winning state either way.
        """
        self.session.flush()
        column = getattr(model, status_column)
        stmt = (
            update(model)
            .where(model.id == entity_id, column == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        changed = result.rowcount == 1

        instance = self.session.get(model, entity_id)
        if instance is not None:
            self.session.refresh(instance)
        return changed
