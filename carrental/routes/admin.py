"""
Admin console routes.
Admins authenticate separately from renters; renter tokens are rejected here.

    POST /api/admin/login
    GET  /api/admin/bookings?status=&page=&limit=
    GET  /api/admin/bookings/<id>
    PUT  /api/admin/bookings/<id>/status
"""

import math
from flask import Blueprint, request, jsonify
from carrental import get_booking_engine
from carrental.models.user import Admin
from carrental.services.booking_engine import MAX_PAGE_SIZE
from carrental.utils.jwt_helper import admin_required, generate_tokens, PRINCIPAL_ADMIN

admin_bp = Blueprint("admin", __name__)


# ── AUTH ──────────────────────────────────────────────────────────────────────

@admin_bp.route("/login", methods=["POST"])
def login_admin():
    data     = request.get_json(silent=True) or {}
    email    = (data.get("email") or "").strip().lower()
    password =  data.get("password") or ""

    if not email or not password:
        return jsonify({"success": False, "message": "Email and password are required"}), 400

    admin = Admin.query.filter_by(email=email).first()
    if not admin or not admin.check_password(password) or not admin.is_active:
        return jsonify({"success": False, "message": "Invalid credentials"}), 401

    tokens = generate_tokens(admin.id, PRINCIPAL_ADMIN)
    return jsonify({
        "success": True,
        "message": "Login successful",
        "admin": admin.to_dict(),
        **tokens,
    }), 200


# ── BOOKINGS ──────────────────────────────────────────────────────────────────

@admin_bp.route("/bookings", methods=["GET"])
@admin_required
def get_all_bookings():
    """Newest first. Optional: ?status=pending|confirmed|completed|cancelled"""
    page = request.args.get("page", 1)
    limit = request.args.get("limit", 10)

    bookings, total = get_booking_engine().list_bookings(
        status=request.args.get("status"), page=page, limit=limit
    )
    limit = min(int(limit), MAX_PAGE_SIZE)
    return jsonify({
        "success": True,
        "bookings": [b.to_admin_dict() for b in bookings],
        "totalBookings": total,
        "currentPage": int(page),
        "totalPages": math.ceil(total / limit) if total else 0,
    }), 200


@admin_bp.route("/bookings/<booking_id>", methods=["GET"])
@admin_required
def get_single_booking(booking_id):
    booking = get_booking_engine().get_booking(booking_id)
    return jsonify({"success": True, "booking": booking.to_admin_dict()}), 200


@admin_bp.route("/bookings/<booking_id>/status", methods=["PUT"])
@admin_required
def update_booking_status(booking_id):
    data = request.get_json(silent=True) or {}
    booking = get_booking_engine().transition_status(booking_id, data.get("status"))
    return jsonify({
        "success": True,
        "message": f"Booking status updated to {booking.status.value} successfully",
        "booking": booking.to_admin_dict(),
    }), 200
