"""
Car routes (public)
    GET /api/cars/<id>/availability?startDate=YYYY-MM-DD&endDate=YYYY-MM-DD
"""

from flask import Blueprint, request, jsonify
from carrental import get_booking_engine

car_bp = Blueprint("cars", __name__)


@car_bp.route("/<car_id>/availability", methods=["GET"])
def check_car_availability(car_id):
    """A car withdrawn from rental is a normal 200 with available=false, not an error."""
    start_date = request.args.get("startDate")
    end_date = request.args.get("endDate")

    if not start_date or not end_date:
        return jsonify({
            "success": False,
            "available": False,
            "message": "Please provide both start and end dates",
        }), 400

    availability = get_booking_engine().check_availability(car_id, start_date, end_date)
    return jsonify({"success": True, **availability.to_dict()}), 200
