"""Order persistence with an atomic insert-if-absent primitive.

The orders table carries a unique constraint on
(scope, idempotency_basis, idempotency_key). insert_if_absent relies on
that constraint instead of reading before writing, so two workers racing
on the same key produce exactly one order: the loser hits IntegrityError,
rolls back, and reports the winner's order id.
"""

import logging
from typing import Any, Callable, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.db.models import Order
from src.services.bulk_types import CreateResult, DuplicateResult, IdempotencyKey, InsertResult

logger = logging.getLogger(__name__)


class OrderPersistenceError(Exception):
    """Raised when an order could not be stored for a non-duplicate reason."""


class OrderRepository(Protocol):
    """Storage collaborator used by OrderCreator."""

    def insert_if_absent(self, key: IdempotencyKey, order_data: dict[str, Any]) -> InsertResult:
        """Insert an order unless one with the same key already exists."""
        ...


class SqlOrderRepository:
    """OrderRepository backed by the SQLAlchemy orders table.

    Each call opens its own session from the factory so the repository can
    be shared by worker threads.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def insert_if_absent(self, key: IdempotencyKey, order_data: dict[str, Any]) -> InsertResult:
        """Insert an order keyed by (scope, basis, value).

        Args:
            key: Idempotency key of the order.
            order_data: Order column values (without key columns).

        Returns:
            CreateResult with the new order id, or DuplicateResult with the
            id of the order that already holds the key.

        Raises:
            OrderPersistenceError: If the insert failed for any other reason.
        """
        session = self._session_factory()
        try:
            order = Order(
                scope=key.scope,
                idempotency_basis=key.basis.value,
                idempotency_key=key.value,
                **order_data,
            )
            session.add(order)
            session.flush()
            order_id = order.id
            session.commit()
            logger.debug("Created order %s (basis=%s)", order_id, key.basis.value)
            return CreateResult(order_id=order_id)
        except IntegrityError:
            session.rollback()
            existing_id = self._find_existing_id(session, key)
            if existing_id is None:
                raise OrderPersistenceError(
                    "Insert violated a constraint but no order holds the key"
                )
            logger.debug("Order key already held by %s (basis=%s)", existing_id, key.basis.value)
            return DuplicateResult(existing_order_id=existing_id)
        except SQLAlchemyError as e:
            session.rollback()
            raise OrderPersistenceError(str(e)) from e
        finally:
            session.close()

    @staticmethod
    def _find_existing_id(session: Session, key: IdempotencyKey) -> str | None:
        try:
            return (
                session.query(Order.id)
                .filter(
                    Order.scope == key.scope,
                    Order.idempotency_basis == key.basis.value,
                    Order.idempotency_key == key.value,
                )
                .scalar()
            )
        except SQLAlchemyError as e:
            raise OrderPersistenceError(str(e)) from e

    def get_order(self, order_id: str) -> Order | None:
        """Return the order with ``order_id``, detached from its session."""
        session = self._session_factory()
        try:
            order = session.get(Order, order_id)
            if order is not None:
                session.expunge(order)
            return order
        finally:
            session.close()

    def count_orders(self, scope: str | None = None) -> int:
        """Count stored orders, optionally within one scope."""
        session = self._session_factory()
        try:
            query = session.query(Order)
            if scope is not None:
                query = query.filter(Order.scope == scope)
            return query.count()
        finally:
            session.close()
