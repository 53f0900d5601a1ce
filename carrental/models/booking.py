"""
Booking model — one renter holding one car over a closed date range.
"""

import enum
import uuid
from datetime import datetime, timezone
from carrental import db


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"


TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


def _enum_column(enum_cls):
    return db.Enum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )


class Booking(db.Model):
    __tablename__ = "bookings"
    __table_args__ = (
        db.Index("ix_bookings_car_dates", "car_id", "start_date", "end_date"),
    )

    id = db.Column(db.String(32), primary_key=True, default=lambda: uuid.uuid4().hex)

    car_id = db.Column(db.Integer, db.ForeignKey("cars.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    pickup_time = db.Column(db.String(40), nullable=True)
    dropoff_time = db.Column(db.String(40), nullable=True)
    pickup_location = db.Column(db.String(255), nullable=True)
    dropoff_location = db.Column(db.String(255), nullable=True)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)

    status = db.Column(_enum_column(BookingStatus), nullable=False, default=BookingStatus.PENDING)
    payment_status = db.Column(_enum_column(PaymentStatus), nullable=False, default=PaymentStatus.UNPAID)
    payment_intent_id = db.Column(db.String(255), nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    car = db.relationship("Car", backref=db.backref("bookings", lazy=True))
    renter = db.relationship("User", backref=db.backref("bookings", lazy=True))

    @property
    def day_count(self) -> int:
        """Both end points are rental days."""
        return (self.end_date - self.start_date).days + 1

    def to_dict(self, include_car=False) -> dict:
        data = {
            "id": self.id,
            "car_id": self.car_id,
            "user_id": self.user_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "pickup_time": self.pickup_time,
            "dropoff_time": self.dropoff_time,
            "pickup_location": self.pickup_location,
            "dropoff_location": self.dropoff_location,
            "total_amount": float(self.total_amount),
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "payment_intent_id": self.payment_intent_id,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_car and self.car:
            data["car"] = self.car.to_summary()
        return data

    def to_cancellation_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "total_amount": float(self.total_amount),
            "pickup_location": self.pickup_location,
            "dropoff_location": self.dropoff_location,
        }

    def to_admin_dict(self) -> dict:
        return {
            **self.to_dict(),
            "user": {
                "id": self.renter.id,
                "name": self.renter.full_name,
                "email": self.renter.email,
            } if self.renter else None,
            "car": {
                "id": self.car.id,
                "name": self.car.name,
                "brand": self.car.brand,
                "model": self.car.model,
            } if self.car else None,
        }

    def __repr__(self):
        return f"<Booking {self.id}: car {self.car_id} {self.start_date}→{self.end_date} [{self.status.value}]>"
