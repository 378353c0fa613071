"""Auth blueprint — /auth/*

JSON session login/logout for the API.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from saleflow.extensions import limiter
from saleflow.models.user import User

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    """Body: {email, password}. Sets the session cookie on success."""
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify(ok=False, code="INVALID_INPUT", error="Email and password are required."), 400

    user = User.query.filter_by(email=email).first()

    # Same message for unknown email and wrong password
    if user is None or not check_password_hash(user.password_hash, password):
        return jsonify(ok=False, code="INVALID_CREDENTIALS", error="Invalid email or password."), 401

    if not user.is_active:
        return jsonify(ok=False, code="ACCOUNT_DISABLED", error="This account has been deactivated."), 403

    login_user(user, remember=bool(data.get("remember")))
    return jsonify(ok=True, user={"id": user.id, "email": user.email})


# ──────────────────────────────────────────────
# POST /auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify(ok=True)


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(ok=True, user={"id": current_user.id, "email": current_user.email})
