from decimal import Decimal

import pytest

from carrental import create_app, db as _db
from carrental.models.car import Car
from carrental.models.user import Admin, User
from carrental.services.errors import ValidationError
from carrental.services.payments import CreatedIntent, PaymentIntentStatus
from carrental.utils.jwt_helper import generate_tokens, PRINCIPAL_ADMIN, PRINCIPAL_USER


class FakePaymentProvider:
    """In-memory stand-in for Stripe."""

    def __init__(self):
        self.intents = {}
        self.created = []
        self.lookups = 0
        self.fail_with = None

    def set_intent(self, intent_id, status, amount=25000, metadata=None):
        self.intents[intent_id] = PaymentIntentStatus(
            id=intent_id, status=status, amount=amount, metadata=metadata or {}
        )

    def get_intent_status(self, intent_id):
        self.lookups += 1
        if self.fail_with:
            raise self.fail_with
        if intent_id not in self.intents:
            raise ValidationError("Payment intent not found")
        return self.intents[intent_id]

    def create_intent(self, *, amount, currency, metadata):
        intent_id = f"pi_test_{len(self.created) + 1}"
        self.created.append({"id": intent_id, "amount": amount, "currency": currency, "metadata": metadata})
        self.set_intent(intent_id, "requires_payment_method", amount=amount, metadata=metadata)
        return CreatedIntent(id=intent_id, client_secret=f"{intent_id}_secret")


@pytest.fixture
def provider():
    return FakePaymentProvider()


@pytest.fixture
def app(provider):
    app = create_app("testing", payment_provider=provider)
    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def engine(app):
    return app.extensions["booking_engine"]


@pytest.fixture
def reconciler(app):
    return app.extensions["payment_reconciler"]


def _add(obj):
    _db.session.add(obj)
    _db.session.commit()
    return obj


@pytest.fixture
def car(app):
    return _add(Car(name="City Hopper", brand="Toyota", model="Corolla", year=2022, price=Decimal("50.00")))


@pytest.fixture
def withdrawn_car(app):
    return _add(Car(
        name="Garage Queen", brand="Fiat", model="Panda", year=2015,
        price=Decimal("30.00"), is_available=False,
    ))


def _make_user(first_name, email):
    user = User(first_name=first_name, last_name="Renter", email=email)
    user.set_password("secret123")
    return _add(user)


@pytest.fixture
def renter(app):
    return _make_user("Alice", "alice@example.com")


@pytest.fixture
def other_renter(app):
    return _make_user("Bob", "bob@example.com")


@pytest.fixture
def admin(app):
    admin = Admin(name="Console Admin", email="admin@example.com")
    admin.set_password("adminpass")
    return _add(admin)


def _bearer(subject_id, principal):
    token = generate_tokens(subject_id, principal)["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def renter_headers(renter):
    return _bearer(renter.id, PRINCIPAL_USER)


@pytest.fixture
def other_renter_headers(other_renter):
    return _bearer(other_renter.id, PRINCIPAL_USER)


@pytest.fixture
def admin_headers(admin):
    return _bearer(admin.id, PRINCIPAL_ADMIN)


@pytest.fixture
def make_booking(engine, car, renter):
    def _make(start="2024-06-01", end="2024-06-05", amount="250.00", car_ref=None, renter_id=None):
        return engine.create_booking(
            car_ref=car_ref if car_ref is not None else car.id,
            renter_id=renter_id if renter_id is not None else renter.id,
            start_date=start,
            end_date=end,
            total_amount=amount,
            pickup_location="Airport",
            dropoff_location="Downtown",
        )
    return _make
