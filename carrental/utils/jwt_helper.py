import jwt
from datetime import datetime, timezone
from functools import wraps
from flask import request, jsonify, current_app
from carrental import db
from carrental.models.user import Admin, User

PRINCIPAL_USER = "user"
PRINCIPAL_ADMIN = "admin"


def generate_tokens(subject_id: int, principal: str = PRINCIPAL_USER) -> dict:
    """Generate access and refresh tokens for a renter or an admin."""
    now = datetime.now(timezone.utc)

    access_payload = {
        "sub": str(subject_id),
        "iat": now,
        "exp": now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"],
        "type": "access",
        "principal": principal,
    }

    refresh_payload = {
        "sub": str(subject_id),
        "iat": now,
        "exp": now + current_app.config["JWT_REFRESH_TOKEN_EXPIRES"],
        "type": "refresh",
        "principal": principal,
    }

    access_token = jwt.encode(
        access_payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm="HS256",
    )
    refresh_token = jwt.encode(
        refresh_payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm="HS256",
    )

    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "Bearer",
        "expires_in": int(current_app.config["JWT_ACCESS_TOKEN_EXPIRES"].total_seconds()),
    }


def decode_token(token: str, token_type: str = "access", principal: str = PRINCIPAL_USER) -> dict:
    """Decode and validate a JWT token issued to the given principal type."""
    payload = jwt.decode(
        token,
        current_app.config["JWT_SECRET_KEY"],
        algorithms=["HS256"],
    )
    if payload.get("type") != token_type:
        raise jwt.InvalidTokenError("Invalid token type")
    if payload.get("principal") != principal:
        raise jwt.InvalidTokenError("Token was not issued for this account type")
    return payload


def _unauthorized(message: str):
    return jsonify({"success": False, "message": message}), 401


def _authenticate(principal: str, model):
    """Resolve the bearer token into an active account, or an error response."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None, _unauthorized("Missing or invalid Authorization header")

    token = auth_header.split(" ", 1)[1]
    try:
        payload = decode_token(token, token_type="access", principal=principal)
    except jwt.ExpiredSignatureError:
        return None, _unauthorized("Access token has expired")
    except jwt.InvalidTokenError as e:
        return None, _unauthorized(f"Invalid token: {str(e)}")

    account = db.session.get(model, int(payload["sub"]))
    if not account or not account.is_active:
        return None, _unauthorized(f"{model.__name__} not found or inactive")
    return account, None


def jwt_required(f):
    """Decorator to protect renter routes with a JWT access token."""
    @wraps(f)
    def decorated(*args, **kwargs):
        user, error = _authenticate(PRINCIPAL_USER, User)
        if error:
            return error
        request.current_user = user
        return f(*args, **kwargs)

    return decorated


def admin_required(f):
    """Decorator: requires an admin access token; renter tokens are rejected."""
    @wraps(f)
    def decorated(*args, **kwargs):
        admin, error = _authenticate(PRINCIPAL_ADMIN, Admin)
        if error:
            return error
        request.current_admin = admin
        return f(*args, **kwargs)

    return decorated
