"""
Booking routes — renters book a car for a date range
    POST   /api/bookings                  - create booking (pending)
    GET    /api/bookings/my-bookings      - current renter's bookings
    GET    /api/bookings/<id>             - get specific booking
    PUT    /api/bookings/<id>/status      - move booking to another status
    PUT    /api/bookings/<id>/cancel      - cancel booking
"""

from flask import Blueprint, request, jsonify
from carrental import get_booking_engine
from carrental.utils.jwt_helper import jwt_required

booking_bp = Blueprint("bookings", __name__)


def _own_booking(booking_id):
    """Fetch a booking, or a 403 response when it belongs to another renter."""
    booking = get_booking_engine().get_booking(booking_id)
    if booking.user_id != request.current_user.id:
        return None, (jsonify({"success": False, "message": "Access denied"}), 403)
    return booking, None


# POST /api/bookings
@booking_bp.route("", methods=["POST"])
@jwt_required
def create_booking():
    """
    Request body:
    {
        "carId":           1,
        "startDate":       "2024-06-01",
        "endDate":         "2024-06-05",
        "pickupTime":      "10:00",
        "dropoffTime":     "18:00",
        "pickupLocation":  "Airport",
        "dropoffLocation": "Downtown",
        "totalAmount":     250
    }
    """
    data = request.get_json(silent=True) or {}

    booking = get_booking_engine().create_booking(
        car_ref=data.get("carId"),
        renter_id=request.current_user.id,
        start_date=data.get("startDate"),
        end_date=data.get("endDate"),
        total_amount=data.get("totalAmount"),
        pickup_time=data.get("pickupTime"),
        dropoff_time=data.get("dropoffTime"),
        pickup_location=data.get("pickupLocation"),
        dropoff_location=data.get("dropoffLocation"),
    )
    return jsonify({
        "success": True,
        "message": "Booking created, awaiting payment",
        "booking": booking.to_dict(),
    }), 201


# GET /api/bookings/my-bookings
@booking_bp.route("/my-bookings", methods=["GET"])
@jwt_required
def my_bookings():
    bookings = get_booking_engine().list_renter_bookings(request.current_user.id)
    return jsonify({
        "success": True,
        "total": len(bookings),
        "bookings": [b.to_dict(include_car=True) for b in bookings],
    }), 200


# GET /api/bookings/<id>
@booking_bp.route("/<booking_id>", methods=["GET"])
@jwt_required
def get_booking(booking_id):
    booking, denied = _own_booking(booking_id)
    if denied:
        return denied
    return jsonify({"success": True, "booking": booking.to_dict(include_car=True)}), 200


# PUT /api/bookings/<id>/status
@booking_bp.route("/<booking_id>/status", methods=["PUT"])
@jwt_required
def update_booking_status(booking_id):
    data = request.get_json(silent=True) or {}
    _, denied = _own_booking(booking_id)
    if denied:
        return denied

    booking = get_booking_engine().transition_status(booking_id, data.get("status"))
    return jsonify({
        "success": True,
        "message": f"Booking status updated to {booking.status.value} successfully",
        "booking": booking.to_dict(),
    }), 200


# PUT /api/bookings/<id>/cancel
@booking_bp.route("/<booking_id>/cancel", methods=["PUT"])
@jwt_required
def cancel_booking(booking_id):
    _, denied = _own_booking(booking_id)
    if denied:
        return denied

    booking = get_booking_engine().cancel_booking(booking_id)
    return jsonify({
        "success": True,
        "message": "Booking cancelled successfully",
        "booking": booking.to_cancellation_dict(),
    }), 200
