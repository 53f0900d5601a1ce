"""
Storage collaborators of the booking core.

The engine and the payment reconciler only see the two protocols below;
``create_app`` wires in the SQLAlchemy-backed implementations.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from functools import wraps
from typing import ContextManager, Iterable, Optional, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from carrental.models.booking import Booking, BookingStatus
from carrental.models.car import Car
from carrental.services.errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CarSnapshot:
    id: int
    is_available: bool
    description: str


class CarDirectory(Protocol):
    def get_car(self, car_ref) -> CarSnapshot: ...


class BookingStore(Protocol):
    def locked_car(self, car_id: int) -> ContextManager[None]: ...

    def insert(self, **fields) -> Booking: ...

    def find_by_id(self, booking_id: str) -> Optional[Booking]: ...

    def find_overlapping(
        self, car_id: int, start: date, end: date, exclude_statuses: Iterable[BookingStatus]
    ) -> list[Booking]: ...

    def update(self, booking_id: str, fields: dict, expected: Optional[dict] = None) -> Optional[Booking]: ...

    def find_by_renter(self, user_id: int) -> list[Booking]: ...

    def find_page(self, status: Optional[BookingStatus], page: int, limit: int) -> tuple[list[Booking], int]: ...


def _store_call(f):
    """Roll back and surface SQLAlchemy failures as StoreError."""
    @wraps(f)
    def decorated(self, *args, **kwargs):
        try:
            return f(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.exception("Booking store call %s failed", f.__name__)
            raise StoreError("Booking store is unavailable, please retry") from exc
    return decorated


class SqlCarDirectory:
    def __init__(self, db):
        self.db = db

    @_store_call
    def get_car(self, car_ref) -> CarSnapshot:
        try:
            car_id = int(car_ref)
        except (TypeError, ValueError):
            raise NotFoundError("Car not found")

        car = self.db.session.get(Car, car_id)
        if not car:
            raise NotFoundError("Car not found")
        return CarSnapshot(id=car.id, is_available=bool(car.is_available), description=car.description)


class SqlBookingStore:
    def __init__(self, db):
        self.db = db
        # One lock per car id, kept for the life of the store; bounded by the catalog.
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, car_id: int) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(car_id, threading.Lock())

    @contextmanager
    def locked_car(self, car_id: int):
        """
        Serialize check-then-insert for one car.

        The in-process lock covers threads sharing this store; the row lock on
        the car covers other processes on databases that honour FOR UPDATE.
        The session's open transaction is ended before the row lock is taken,
        so reads inside the block see bookings committed while waiting.
        Whatever the block leaves uncommitted is rolled back on exit.
        """
        with self._lock_for(car_id):
            try:
                self.db.session.rollback()
                self.db.session.execute(
                    select(Car.id).where(Car.id == car_id).with_for_update()
                )
            except SQLAlchemyError as exc:
                self.db.session.rollback()
                logger.exception("Could not lock car %s", car_id)
                raise StoreError("Booking store is unavailable, please retry") from exc
            try:
                yield
            finally:
                self.db.session.rollback()

    @_store_call
    def insert(self, **fields) -> Booking:
        booking = Booking(**fields)
        self.db.session.add(booking)
        self.db.session.commit()
        return booking

    @_store_call
    def find_by_id(self, booking_id: str) -> Optional[Booking]:
        if not booking_id:
            return None
        return self.db.session.get(Booking, str(booking_id))

    @_store_call
    def find_overlapping(self, car_id, start, end, exclude_statuses) -> list[Booking]:
        stmt = select(Booking).where(
            Booking.car_id == car_id,
            Booking.status.not_in(list(exclude_statuses)),
            Booking.start_date <= end,
            Booking.end_date >= start,
        )
        return list(self.db.session.scalars(stmt))

    @_store_call
    def update(self, booking_id, fields, expected=None) -> Optional[Booking]:
        """
        Compare-and-set update of one booking.

        ``expected`` maps column names to the values the row must still hold;
        returns None when the row no longer matches (or does not exist).
        """
        stmt = update(Booking).where(Booking.id == booking_id)
        for name, value in (expected or {}).items():
            stmt = stmt.where(getattr(Booking, name) == value)
        stmt = stmt.values(**fields).execution_options(synchronize_session=False)

        result = self.db.session.execute(stmt)
        if result.rowcount == 0:
            self.db.session.rollback()
            return None

        self.db.session.commit()
        return self.db.session.get(Booking, booking_id, populate_existing=True)

    @_store_call
    def find_by_renter(self, user_id: int) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc())
        )
        return list(self.db.session.scalars(stmt))

    @_store_call
    def find_page(self, status, page, limit) -> tuple[list[Booking], int]:
        stmt = select(Booking)
        if status is not None:
            stmt = stmt.where(Booking.status == status)

        total = self.db.session.scalar(select(func.count()).select_from(stmt.subquery()))
        rows = self.db.session.scalars(
            stmt.order_by(Booking.created_at.desc()).offset((page - 1) * limit).limit(limit)
        )
        return list(rows), total
