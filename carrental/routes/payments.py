"""
Payment routes
    POST /api/payments/create-payment-intent  - open a Stripe intent for a booking
    POST /api/payments/confirm-payment        - reconcile a booking with its intent
"""

from flask import Blueprint, request, jsonify
from carrental import get_payment_reconciler
from carrental.services.payments import PaymentOutcome
from carrental.utils.jwt_helper import jwt_required

payment_bp = Blueprint("payments", __name__)

_OUTCOME_STATUS_CODES = {
    PaymentOutcome.CONFIRMED: 200,
    PaymentOutcome.PROCESSING: 202,
    PaymentOutcome.REQUIRES_PAYMENT_METHOD: 400,
    PaymentOutcome.UNKNOWN: 400,
}


@payment_bp.route("/create-payment-intent", methods=["POST"])
@jwt_required
def create_payment_intent():
    data = request.get_json(silent=True) or {}
    intent = get_payment_reconciler().create_payment_intent(
        data.get("bookingId"), request.current_user.id
    )
    return jsonify({
        "success": True,
        "paymentIntentId": intent.id,
        "clientSecret": intent.client_secret,
    }), 200


@payment_bp.route("/confirm-payment", methods=["POST"])
@jwt_required
def confirm_payment():
    """
    Request body:
    {
        "bookingId":       "<booking id>",
        "paymentIntentId": "pi_..."
    }
    """
    data = request.get_json(silent=True) or {}
    result = get_payment_reconciler().confirm_payment(
        data.get("bookingId"), data.get("paymentIntentId"), renter_id=request.current_user.id
    )

    body = {
        "success": result.outcome is PaymentOutcome.CONFIRMED,
        "message": result.message,
        "payment_status": result.provider_status,
    }
    if result.outcome is PaymentOutcome.CONFIRMED:
        body["booking"] = result.booking.to_dict()
        body["receipt"] = result.receipt.to_dict()
    elif result.outcome is PaymentOutcome.PROCESSING:
        body["success"] = True

    return jsonify(body), _OUTCOME_STATUS_CODES[result.outcome]
