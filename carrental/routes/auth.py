"""
Renter authentication
    POST /api/auth/signup    - create renter account
    POST /api/auth/login     - email + password login
    POST /api/auth/refresh   - new access token from a refresh token
    GET  /api/auth/me        - current renter
"""

import jwt
from flask import Blueprint, request, jsonify
from carrental import db
from carrental.models.user import User
from carrental.utils.jwt_helper import generate_tokens, decode_token, jwt_required, PRINCIPAL_USER

auth_bp = Blueprint("auth", __name__)


def _error(message: str, status: int):
    return jsonify({"success": False, "message": message}), status


@auth_bp.route("/signup", methods=["POST"])
def signup():
    data = request.get_json(silent=True) or {}

    first_name = (data.get("first_name") or "").strip()
    last_name  = (data.get("last_name")  or "").strip()
    email      = (data.get("email")      or "").strip().lower()
    password   =  data.get("password")   or ""

    validation_error = check_if_empty(first_name, last_name, email, password)
    if validation_error:
        return validation_error

    if User.query.filter_by(email=email).first():
        return _error("Email already registered", 409)

    user = User(first_name=first_name, last_name=last_name, email=email)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    tokens = generate_tokens(user.id, PRINCIPAL_USER)
    return jsonify({
        "success": True,
        "message": "Account created successfully",
        "user": user.to_dict(),
        **tokens,
    }), 201


def check_if_empty(first_name: str, last_name: str, email: str, password: str):
    if not first_name or not last_name or not email or not password:
        return _error("first name, last name, email, and password are required", 400)
    if len(first_name) < 2 or len(last_name) < 2:
        return _error("First and last name must be at least 2 characters", 400)
    if len(password) < 6:
        return _error("Password must be at least 6 characters", 400)
    if "@" not in email:
        return _error("Invalid email address", 400)
    return None


@auth_bp.route("/login", methods=["POST"])
def login():
    data     = request.get_json(silent=True) or {}
    email    = (data.get("email") or "").strip().lower()
    password =  data.get("password") or ""

    if not email or not password:
        return _error("Email and password are required", 400)

    user = User.query.filter_by(email=email).first()

    if not user or not user.check_password(password):
        return _error("Invalid credentials", 401)
    if not user.is_active:
        return _error("Account is deactivated", 403)

    tokens = generate_tokens(user.id, PRINCIPAL_USER)
    return jsonify({
        "success": True,
        "message": "Login successful",
        "user": user.to_dict(),
        **tokens,
    }), 200


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """Issue a new access token using a valid refresh token."""
    data = request.get_json(silent=True) or {}
    refresh_token = data.get("refresh_token")

    if not refresh_token:
        return _error("Refresh token is required", 400)

    try:
        payload = decode_token(refresh_token, token_type="refresh", principal=PRINCIPAL_USER)
    except jwt.ExpiredSignatureError:
        return _error("Refresh token has expired, please log in again", 401)
    except jwt.InvalidTokenError as e:
        return _error(f"Invalid refresh token: {str(e)}", 401)

    user = db.session.get(User, int(payload["sub"]))
    if not user or not user.is_active:
        return _error("User not found or inactive", 401)

    tokens = generate_tokens(user.id, PRINCIPAL_USER)
    return jsonify({"success": True, "message": "Token refreshed successfully", **tokens}), 200


@auth_bp.route("/me", methods=["GET"])
@jwt_required
def me():
    return jsonify({"success": True, "user": request.current_user.to_dict()}), 200
