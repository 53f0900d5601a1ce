"""
Payment reconciliation.

Stripe owns the payment intent; this module only reads it and moves the
booking forward once the provider reports the charge as succeeded.
Provider states map as follows:

    succeeded                -> booking confirmed + paid, receipt issued
    processing               -> nothing changes, caller polls again
    requires_payment_method  -> nothing changes, renter retries payment
    anything else            -> nothing changes, renter contacts support
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP
from typing import Any, Callable, Dict, Optional, Protocol

import stripe

from carrental.models.booking import Booking, BookingStatus, PaymentStatus
from carrental.services.booking_engine import MAX_CAS_ATTEMPTS, utcnow
from carrental.services.errors import (
    InvalidTransitionError,
    NotFoundError,
    ProviderError,
    StoreError,
    ValidationError,
)
from carrental.services.repository import BookingStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentIntentStatus:
    id: str
    status: str
    amount: int  # minor units
    created_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CreatedIntent:
    id: str
    client_secret: Optional[str]


class PaymentProvider(Protocol):
    def get_intent_status(self, intent_id: str) -> PaymentIntentStatus: ...

    def create_intent(self, *, amount: int, currency: str, metadata: Dict[str, Any]) -> CreatedIntent: ...


class StripePaymentProvider:
    """Stripe-backed provider. Every request is bounded by ``timeout`` seconds."""

    def __init__(self, api_key: str, timeout: float = 10.0):
        self.api_key = api_key
        self.timeout = timeout
        self._client: Optional[stripe.StripeClient] = None

    def _get_client(self) -> stripe.StripeClient:
        if not self.api_key:
            raise ProviderError("Payment provider is not configured")
        if self._client is None:
            self._client = stripe.StripeClient(
                self.api_key,
                http_client=stripe.RequestsClient(timeout=self.timeout),
                max_network_retries=0,
            )
        return self._client

    def get_intent_status(self, intent_id: str) -> PaymentIntentStatus:
        client = self._get_client()
        try:
            intent = client.payment_intents.retrieve(intent_id)
        except stripe.InvalidRequestError as exc:
            logger.warning("Stripe rejected lookup of intent %s: %s", intent_id, exc)
            raise ValidationError("Payment intent not found")
        except stripe.StripeError as exc:
            logger.exception("Stripe lookup of intent %s failed", intent_id)
            raise ProviderError("Payment provider request failed, please retry") from exc

        created = datetime.fromtimestamp(intent.created, tz=timezone.utc) if intent.created else None
        return PaymentIntentStatus(
            id=intent.id,
            status=intent.status,
            amount=intent.amount,
            created_at=created,
            metadata=dict(intent.metadata or {}),
        )

    def create_intent(self, *, amount: int, currency: str, metadata: Dict[str, Any]) -> CreatedIntent:
        client = self._get_client()
        try:
            intent = client.payment_intents.create(params={
                "amount": amount,
                "currency": currency,
                "metadata": metadata,
                "automatic_payment_methods": {"enabled": True},
            })
        except stripe.StripeError as exc:
            logger.exception("Stripe intent creation failed")
            raise ProviderError("Payment provider request failed, please retry") from exc
        return CreatedIntent(id=intent.id, client_secret=getattr(intent, "client_secret", None))


# ── RECEIPT ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Receipt:
    receipt_number: str
    issue_date: str
    renter_name: Optional[str]
    renter_email: Optional[str]
    car: Optional[str]
    start_date: str
    end_date: str
    days: int
    amount: float
    payment_id: str
    payment_status: str
    paid_at: Optional[str]

    def to_dict(self) -> dict:
        return {
            "receipt_number": self.receipt_number,
            "issue_date": self.issue_date,
            "customer": {"name": self.renter_name, "email": self.renter_email},
            "car": self.car,
            "rental_period": {
                "start_date": self.start_date,
                "end_date": self.end_date,
                "days": self.days,
            },
            "amount": self.amount,
            "payment": {
                "id": self.payment_id,
                "status": self.payment_status,
                "paid_at": self.paid_at,
            },
        }


def build_receipt(booking: Booking, intent: PaymentIntentStatus) -> Receipt:
    """Pure projection of a paid booking and its payment intent."""
    paid_at = booking.paid_at or intent.created_at or booking.created_at
    renter = booking.renter
    return Receipt(
        receipt_number=f"RCPT-{paid_at:%Y%m%d}-{booking.id[:8].upper()}",
        issue_date=paid_at.date().isoformat(),
        renter_name=renter.full_name if renter else None,
        renter_email=renter.email if renter else None,
        car=booking.car.description if booking.car else None,
        start_date=booking.start_date.isoformat(),
        end_date=booking.end_date.isoformat(),
        days=booking.day_count,
        amount=float(booking.total_amount),
        payment_id=booking.payment_intent_id or intent.id,
        payment_status=intent.status,
        paid_at=paid_at.isoformat(),
    )


# ── RECONCILIATION ────────────────────────────────────────────────────────────

class PaymentOutcome(str, enum.Enum):
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ConfirmationResult:
    outcome: PaymentOutcome
    booking: Booking
    message: str
    provider_status: str
    receipt: Optional[Receipt] = None


class PaymentReconciler:
    def __init__(
        self,
        store: BookingStore,
        provider: PaymentProvider,
        currency: str = "usd",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.provider = provider
        self.currency = currency
        self.clock = clock

    def _get_booking(self, booking_id) -> Booking:
        booking = self.store.find_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    def create_payment_intent(self, booking_id, renter_id: int) -> CreatedIntent:
        booking = self._get_booking(booking_id)
        if booking.user_id != renter_id:
            raise NotFoundError("Booking not found")
        if booking.status.is_terminal:
            raise InvalidTransitionError(f"Booking is already {booking.status.value}")
        if booking.payment_status is PaymentStatus.PAID:
            raise ValidationError("Booking is already paid")

        amount = int((booking.total_amount * 100).to_integral_value(rounding=ROUND_HALF_UP))
        created = self.provider.create_intent(
            amount=amount,
            currency=self.currency,
            metadata={
                "booking_id": booking.id,
                "car_id": str(booking.car_id),
                "user_id": str(booking.user_id),
            },
        )
        logger.info("Payment intent %s opened for booking %s (%s %s)", created.id, booking.id, amount, self.currency)
        return created

    def confirm_payment(self, booking_id, payment_intent_id, renter_id: Optional[int] = None) -> ConfirmationResult:
        """
        Reconcile a booking with its payment intent.

        When ``renter_id`` is given the booking must belong to that renter;
        otherwise it is reported as not found.
        """
        booking = self._get_booking(booking_id)
        if renter_id is not None and booking.user_id != renter_id:
            raise NotFoundError("Booking not found")
        if not payment_intent_id:
            raise ValidationError("paymentIntentId is required")

        # Nothing below mutates the booking until the provider answer is classified.
        intent = self.provider.get_intent_status(payment_intent_id)

        bound_to = intent.metadata.get("booking_id")
        if bound_to and bound_to != booking.id:
            raise ValidationError("Payment intent does not belong to this booking")

        if intent.status == "succeeded":
            booking = self._settle(booking, intent)
            logger.info("Payment %s confirmed booking %s", intent.id, booking.id)
            return ConfirmationResult(
                outcome=PaymentOutcome.CONFIRMED,
                booking=booking,
                message="Payment confirmed successfully",
                provider_status=intent.status,
                receipt=build_receipt(booking, intent),
            )
        if intent.status == "processing":
            return ConfirmationResult(
                outcome=PaymentOutcome.PROCESSING,
                booking=booking,
                message="Payment is still processing",
                provider_status=intent.status,
            )
        if intent.status == "requires_payment_method":
            return ConfirmationResult(
                outcome=PaymentOutcome.REQUIRES_PAYMENT_METHOD,
                booking=booking,
                message="Payment failed, please try again",
                provider_status=intent.status,
            )

        logger.warning("Payment %s for booking %s is in unexpected state %r", intent.id, booking.id, intent.status)
        return ConfirmationResult(
            outcome=PaymentOutcome.UNKNOWN,
            booking=booking,
            message=f"Payment status: {intent.status}. Please contact support.",
            provider_status=intent.status,
        )

    def _settle(self, booking: Booking, intent: PaymentIntentStatus) -> Booking:
        """Mark paid (and confirmed unless terminal) exactly once."""
        for _ in range(MAX_CAS_ATTEMPTS):
            if booking.payment_status is PaymentStatus.PAID:
                return booking

            fields = {
                "payment_status": PaymentStatus.PAID,
                "payment_intent_id": intent.id,
                "paid_at": self.clock(),
            }
            if booking.status.is_terminal:
                logger.warning(
                    "Payment %s succeeded for %s booking %s; status left unchanged",
                    intent.id, booking.status.value, booking.id,
                )
            else:
                fields["status"] = BookingStatus.CONFIRMED

            updated = self.store.update(
                booking.id,
                fields,
                expected={"status": booking.status, "payment_status": PaymentStatus.UNPAID},
            )
            if updated is not None:
                return updated
            booking = self._get_booking(booking.id)

        raise StoreError("Booking was modified concurrently, please retry")
