import logging
from flask import Flask, jsonify, current_app
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from werkzeug.exceptions import HTTPException
from config import config

db = SQLAlchemy()
bcrypt = Bcrypt()

logger = logging.getLogger(__name__)


def create_app(config_name="default", payment_provider=None):
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    db.init_app(app)
    bcrypt.init_app(app)

    from carrental.models import car, booking, user  # noqa: F401  register tables
    from carrental.services.booking_engine import BookingEngine
    from carrental.services.payments import PaymentReconciler, StripePaymentProvider
    from carrental.services.repository import SqlBookingStore, SqlCarDirectory

    if payment_provider is None:
        payment_provider = StripePaymentProvider(
            api_key=app.config["STRIPE_SECRET_KEY"],
            timeout=app.config["PAYMENT_PROVIDER_TIMEOUT"],
        )
        if not app.config["STRIPE_SECRET_KEY"]:
            logger.warning("STRIPE_SECRET_KEY is not set; payment endpoints will fail")

    store = SqlBookingStore(db)
    app.extensions["booking_engine"] = BookingEngine(store, SqlCarDirectory(db))
    app.extensions["payment_reconciler"] = PaymentReconciler(
        store, payment_provider, currency=app.config["STRIPE_CURRENCY"]
    )

    from carrental.routes.auth import auth_bp
    from carrental.routes.admin import admin_bp
    from carrental.routes.bookings import booking_bp
    from carrental.routes.cars import car_bp
    from carrental.routes.payments import payment_bp
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(booking_bp, url_prefix="/api/bookings")
    app.register_blueprint(car_bp, url_prefix="/api/cars")
    app.register_blueprint(payment_bp, url_prefix="/api/payments")

    register_error_handlers(app)

    with app.app_context():
        db.create_all()

    return app


def get_booking_engine():
    return current_app.extensions["booking_engine"]


def get_payment_reconciler():
    return current_app.extensions["payment_reconciler"]


def register_error_handlers(app):
    from carrental.services.errors import BookingError

    @app.errorhandler(BookingError)
    def handle_booking_error(err):
        if err.status_code >= 500:
            logger.error("%s: %s", type(err).__name__, err.message)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return jsonify({"success": False, "message": err.description}), err.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(err):
        logger.exception("Unhandled error")
        return jsonify({"success": False, "message": "Internal server error"}), 500
