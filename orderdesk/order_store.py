from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, List

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .db import Base
from .models import OrderRecord
from .ordering.draft import Order, dump_lines, load_lines
from .ordering.errors import OrderStoreError
from .ordering.ports import OrderListing

logger = logging.getLogger(__name__)


def create_all(engine) -> None:
    Base.metadata.create_all(bind=engine)


def _to_order(row: OrderRecord) -> Order:
    try:
        descriptions, quantities, codes = load_lines(row.items_json)
    except (ValueError, TypeError, AttributeError) as e:
        raise OrderStoreError(f"order {row.id} has unreadable lines: {e}") from e
    try:
        return Order(
            customer_name=row.customer_name or "",
            descriptions=descriptions,
            quantities=quantities,
            codes=codes,
            dispatch_date=row.dispatch_date,
            note=row.note or "",
            manual_address=row.manual_address or "",
            address=row.address or "",
            submitting_user=row.submitting_user,
        )
    except ValidationError as e:
        raise OrderStoreError(f"order {row.id} is malformed: {e.errors()[0].get('msg')}") from e


def _fill(row: OrderRecord, order: Order) -> None:
    row.submitting_user = order.submitting_user
    row.customer_name = order.customer_name
    row.items_json = dump_lines(order)
    row.dispatch_date = order.dispatch_date
    row.note = order.note
    row.manual_address = order.manual_address
    row.address = order.address
    row.updated_at = datetime.utcnow()


class SqlOrderStore:
    """
    Orders kept in one SQL table. The row id is the order index.

    Every call runs in its own transaction; database errors and missing rows
    surface as OrderStoreError.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Order store failure: %s", e)
            raise OrderStoreError(str(e)) from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _row(db: Session, index: int) -> OrderRecord:
        row = db.get(OrderRecord, index)
        if row is None:
            raise OrderStoreError(f"order {index} not found")
        return row

    def append(self, order: Order) -> int:
        with self._session() as db:
            row = OrderRecord(created_at=datetime.utcnow())
            _fill(row, order)
            db.add(row)
            db.flush()
            index = row.id
        logger.info("Stored order %s for %s", index, order.customer_name)
        return index

    def list_by_user(self, user: str) -> List[OrderListing]:
        with self._session() as db:
            rows = (
                db.query(OrderRecord)
                .filter(OrderRecord.submitting_user == user)
                .order_by(OrderRecord.id.asc())
                .all()
            )
            return [
                OrderListing(index=r.id, customer_name=r.customer_name or "", dispatch_date=r.dispatch_date)
                for r in rows
            ]

    def load_by_index(self, index: int) -> Order:
        with self._session() as db:
            return _to_order(self._row(db, index))

    def delete_by_index(self, index: int) -> None:
        with self._session() as db:
            db.delete(self._row(db, index))
        logger.info("Deleted order %s", index)

    def update(self, index: int, order: Order) -> int:
        with self._session() as db:
            _fill(self._row(db, index), order)
        logger.info("Updated order %s", index)
        return index
