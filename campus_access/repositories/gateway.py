"""Persistence gateway - the only place that talks to the ORM session."""

from abc import ABC, abstractmethod
from typing import Any, Generic, Iterable, Optional, TypeVar

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import func, select, update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_access.core.clock import utcnow
from campus_access.core.errors import ConflictError, DuplicateKeyError, NotFoundError
from campus_access.models.appointment import Appointment
from campus_access.models.college import College
from campus_access.models.department import Department
from campus_access.models.membership import Membership
from campus_access.models.user import User

ModelT = TypeVar("ModelT")


class Repository(ABC, Generic[ModelT]):
    """CRUD contract for one entity type.

    ``conditions`` are backend expressions and ``criteria`` are equality
    filters on attribute names. Soft-deleted rows are hidden unless
    ``include_deleted`` is set.
    """

    @abstractmethod
    def find_by_id(self, entity_id: Any, include_deleted: bool = False) -> ModelT:
        """Return the entity or raise NotFoundError."""

    @abstractmethod
    def find_one(self, *conditions, include_deleted: bool = False, **criteria) -> Optional[ModelT]:
        """Return the first match or None."""

    @abstractmethod
    def find_all(self, *conditions, order_by=None, include_deleted: bool = False, **criteria) -> list[ModelT]:
        """Return every match, sorted by ``order_by`` when given."""

    @abstractmethod
    def create(self, entity: ModelT) -> ModelT:
        """Insert the entity; raise DuplicateKeyError on a uniqueness violation."""

    @abstractmethod
    def update(self, entity_id: Any, patch: dict, expected: Optional[dict] = None) -> ModelT:
        """Apply ``patch`` in one statement.

        With ``expected``, the write only happens while the stored row still
        matches it; otherwise ConflictError is raised and nothing changes.
        """

    @abstractmethod
    def count(self, *conditions, **criteria) -> int:
        """Count live rows matching the filters."""

    @abstractmethod
    def delete(self, entity_id: Any, hard: bool = False) -> None:
        """Tombstone the row, or remove it for good when ``hard`` is set."""


class SqlAlchemyRepository(Repository[ModelT]):
    def __init__(self, session: Session, model: type[ModelT]):
        self.session = session
        self.model = model
        self._primary_key = [column.key for column in sa_inspect(model).primary_key]
        self._soft_delete = hasattr(model, "deleted_at")

    def _identity(self, entity_id: Any) -> tuple:
        return entity_id if isinstance(entity_id, tuple) else (entity_id,)

    def _identity_conditions(self, entity_id: Any) -> list:
        identity = self._identity(entity_id)
        return [getattr(self.model, key) == value for key, value in zip(self._primary_key, identity)]

    def _filters(self, conditions: Iterable, criteria: dict, include_deleted: bool) -> list:
        filters = list(conditions)
        filters.extend(getattr(self.model, key) == value for key, value in criteria.items())
        if self._soft_delete and not include_deleted:
            filters.append(self.model.deleted_at.is_(None))
        return filters

    def _expectation(self, column_name: str, value: Any):
        column = getattr(self.model, column_name)
        if value is None:
            return column.is_(None)
        if isinstance(value, (set, frozenset, list, tuple)):
            return column.in_(list(value))
        return column == value

    def find_by_id(self, entity_id: Any, include_deleted: bool = False) -> ModelT:
        entity = self.session.get(self.model, self._identity(entity_id))
        if entity is None or (self._soft_delete and entity.deleted_at is not None and not include_deleted):
            raise NotFoundError(f"{self.model.__name__} not found.")
        return entity

    def find_one(self, *conditions, include_deleted: bool = False, **criteria) -> Optional[ModelT]:
        statement = select(self.model).where(*self._filters(conditions, criteria, include_deleted))
        return self.session.execute(statement.limit(1)).scalars().first()

    def find_all(self, *conditions, order_by=None, include_deleted: bool = False, **criteria) -> list[ModelT]:
        statement = select(self.model).where(*self._filters(conditions, criteria, include_deleted))
        if order_by is not None:
            order = order_by if isinstance(order_by, (list, tuple)) else [order_by]
            statement = statement.order_by(*order)
        return list(self.session.execute(statement).scalars().all())

    def create(self, entity: ModelT) -> ModelT:
        self.session.add(entity)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            raise DuplicateKeyError(f"{self.model.__name__} violates a uniqueness constraint.") from exc
        return entity

    def update(self, entity_id: Any, patch: dict, expected: Optional[dict] = None) -> ModelT:
        conditions = self._identity_conditions(entity_id)
        conditions.extend(self._expectation(name, value) for name, value in (expected or {}).items())
        if self._soft_delete:
            conditions.append(self.model.deleted_at.is_(None))

        values = {getattr(self.model, key): value for key, value in patch.items()}
        if hasattr(self.model, "updated_at") and "updated_at" not in patch:
            values[self.model.updated_at] = utcnow()

        statement = sa_update(self.model).where(*conditions).values(values)
        try:
            result = self.session.execute(statement.execution_options(synchronize_session=False))
        except IntegrityError as exc:
            self.session.rollback()
            raise DuplicateKeyError(f"{self.model.__name__} violates a uniqueness constraint.") from exc

        if result.rowcount == 0:
            # Either the row is gone or someone else moved it first
            self.find_by_id(entity_id)
            raise ConflictError(f"{self.model.__name__} was modified concurrently.")

        entity = self.session.get(self.model, self._identity(entity_id))
        self.session.refresh(entity)
        return entity

    def count(self, *conditions, **criteria) -> int:
        statement = select(func.count()).select_from(self.model).where(*self._filters(conditions, criteria, False))
        return self.session.execute(statement).scalar_one()

    def delete(self, entity_id: Any, hard: bool = False) -> None:
        entity = self.find_by_id(entity_id, include_deleted=hard)
        if hard or not self._soft_delete:
            self.session.delete(entity)
            self.session.flush()
            return
        entity.deleted_at = utcnow()
        self.session.flush()


class Gateway:
    """One unit of work: a session plus a repository per entity type."""

    def __init__(self, session: Session):
        self.session = session
        self.users: Repository[User] = SqlAlchemyRepository(session, User)
        self.colleges: Repository[College] = SqlAlchemyRepository(session, College)
        self.departments: Repository[Department] = SqlAlchemyRepository(session, Department)
        self.memberships: Repository[Membership] = SqlAlchemyRepository(session, Membership)
        self.appointments: Repository[Appointment] = SqlAlchemyRepository(session, Appointment)

    def commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise DuplicateKeyError() from exc

    def rollback(self) -> None:
        self.session.rollback()
