"""
Booking lifecycle engine.

Owns the status state machine and the rule that no two active bookings
(pending or confirmed) of the same car overlap in date range.

    pending ──► confirmed ──► completed
       │            │
       └────────────┴──────► cancelled

completed and cancelled are terminal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

from carrental.models.booking import (
    Booking,
    BookingStatus,
    PaymentStatus,
    TERMINAL_STATUSES,
)
from carrental.services.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    StoreError,
    UnavailableError,
    ValidationError,
)
from carrental.services.repository import BookingStore, CarDirectory

logger = logging.getLogger(__name__)

MAX_CAS_ATTEMPTS = 3
MAX_PAGE_SIZE = 100

# Forward moves only. Skipping confirmed (pending -> completed) is allowed.
ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_date(value, field: str = "date") -> date:
    """Accept YYYY-MM-DD or a full ISO-8601 timestamp; anything else is a ValidationError."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")

    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError("Invalid date format. Please use YYYY-MM-DD")


def parse_date_range(start_value, end_value) -> tuple[date, date]:
    start = parse_date(start_value, "startDate")
    end = parse_date(end_value, "endDate")
    if start > end:
        raise ValidationError("Start date must be before end date")
    return start, end


def parse_status(value) -> BookingStatus:
    try:
        return BookingStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in BookingStatus)
        raise ValidationError(f"Invalid status. Must be one of: {allowed}")


def parse_amount(value) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError("totalAmount is required")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError("totalAmount must be a number")
    if not amount.is_finite() or amount < 0:
        raise ValidationError("totalAmount must be a non-negative number")
    return amount.quantize(Decimal("0.01"))


def ranges_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Closed-interval intersection: shared end points count as overlap."""
    return start_a <= end_b and start_b <= end_a


@dataclass(frozen=True)
class Availability:
    available: bool
    message: str
    reason: Optional[str] = None  # "car" or "conflict" when unavailable

    def to_dict(self) -> dict:
        return {"available": self.available, "message": self.message}


class BookingEngine:
    def __init__(self, store: BookingStore, cars: CarDirectory, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.cars = cars
        self.clock = clock

    # ── queries ───────────────────────────────────────────────────────────────

    def get_booking(self, booking_id) -> Booking:
        booking = self.store.find_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    def list_renter_bookings(self, renter_id: int) -> list[Booking]:
        return self.store.find_by_renter(renter_id)

    def list_bookings(self, status=None, page=1, limit=10) -> tuple[list[Booking], int]:
        status_filter = parse_status(status) if status else None
        try:
            page, limit = int(page), int(limit)
        except (TypeError, ValueError):
            raise ValidationError("page and limit must be integers")
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be at least 1")
        return self.store.find_page(status_filter, page, min(limit, MAX_PAGE_SIZE))

    def _conflicts(self, car_id: int, start: date, end: date) -> list[Booking]:
        # Shared by check_availability and create_booking.
        candidates = self.store.find_overlapping(car_id, start, end, TERMINAL_STATUSES)
        return [b for b in candidates if ranges_overlap(start, end, b.start_date, b.end_date)]

    def check_availability(self, car_ref, start_date, end_date) -> Availability:
        start, end = parse_date_range(start_date, end_date)
        car = self.cars.get_car(car_ref)

        if not car.is_available:
            return Availability(False, "Car is not available for rental", reason="car")
        if self._conflicts(car.id, start, end):
            return Availability(False, "Car is not available for the selected dates", reason="conflict")
        return Availability(True, "Car is available for the selected dates")

    # ── mutations ─────────────────────────────────────────────────────────────

    def create_booking(
        self,
        *,
        car_ref,
        renter_id: int,
        start_date,
        end_date,
        total_amount,
        pickup_time: Optional[str] = None,
        dropoff_time: Optional[str] = None,
        pickup_location: Optional[str] = None,
        dropoff_location: Optional[str] = None,
    ) -> Booking:
        start, end = parse_date_range(start_date, end_date)
        amount = parse_amount(total_amount)

        car = self.cars.get_car(car_ref)
        if not car.is_available:
            raise UnavailableError("Car is not available for rental")

        with self.store.locked_car(car.id):
            if self._conflicts(car.id, start, end):
                logger.info("Rejected booking of car %s for %s..%s: dates taken", car.id, start, end)
                raise ConflictError("Car is already booked for these dates")

            booking = self.store.insert(
                car_id=car.id,
                user_id=renter_id,
                start_date=start,
                end_date=end,
                pickup_time=pickup_time,
                dropoff_time=dropoff_time,
                pickup_location=pickup_location,
                dropoff_location=dropoff_location,
                total_amount=amount,
                status=BookingStatus.PENDING,
                payment_status=PaymentStatus.UNPAID,
                created_at=self.clock(),
            )

        logger.info("Booking %s created for car %s (%s..%s)", booking.id, car.id, start, end)
        return booking

    def transition_status(self, booking_id, target) -> Booking:
        target_status = parse_status(target)
        return self._move(
            booking_id,
            target_status,
            terminal_message="Booking is already {status} and its status can no longer change",
        )

    def cancel_booking(self, booking_id) -> Booking:
        return self._move(
            booking_id,
            BookingStatus.CANCELLED,
            terminal_message="Booking cannot be cancelled as it is already {status}",
        )

    def _move(self, booking_id, target: BookingStatus, terminal_message: str) -> Booking:
        for _ in range(MAX_CAS_ATTEMPTS):
            booking = self.get_booking(booking_id)
            current = booking.status

            if current.is_terminal:
                raise InvalidTransitionError(terminal_message.format(status=current.value))
            if target == current:
                return booking
            if target not in ALLOWED_TRANSITIONS[current]:
                raise InvalidTransitionError(
                    f"Cannot move booking from {current.value} to {target.value}"
                )

            updated = self.store.update(booking.id, {"status": target}, expected={"status": current})
            if updated is not None:
                logger.info("Booking %s moved %s -> %s", booking.id, current.value, target.value)
                return updated

            logger.debug("Booking %s changed underneath a status update, re-reading", booking_id)

        raise StoreError("Booking was modified concurrently, please retry")
