import logging

from flask import Blueprint, g, jsonify, request

from src.config import get_config
from src.errors import ValidationError
from src.schemas import parse_body

from . import database as db
from .schemas import LoginRequest, PasswordChange, ProfileUpdate, RegisterRequest
from .tokens import get_token_manager, rate_limit, require_session

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _check_password_strength(password: str):
    min_length = get_config().get("auth.password_min_length", 6)
    if len(password) < min_length:
        raise ValidationError(
            f"Password must be at least {min_length} characters long"
        )


def _session_response(user, status=200):
    token_data = get_token_manager().generate_token(user.id, request.remote_addr)
    return (
        jsonify(
            {
                "token": token_data["token"],
                "expiry": token_data["expiry"],
                "user": user.to_dict(),
            }
        ),
        status,
    )


@auth_bp.route("/register", methods=["POST"])
@rate_limit("login")
def register():
    data = parse_body(RegisterRequest)
    _check_password_strength(data.password)

    user = db.create_user(data.name, data.email, data.password)
    return _session_response(user, 201)


@auth_bp.route("/login", methods=["POST"])
@rate_limit("login")
def login():
    data = parse_body(LoginRequest)
    user = db.authenticate(data.email, data.password)
    logger.info(f"User {user.id} signed in from {request.remote_addr}")
    return _session_response(user)


@auth_bp.route("/logout", methods=["POST"])
@require_session
def logout():
    get_token_manager().revoke_token(g.session_token)
    return jsonify({"success": True})


@auth_bp.route("/me")
@require_session
def me():
    return jsonify(g.user.to_dict())


@auth_bp.route("/profile", methods=["PATCH"])
@require_session
def update_profile():
    data = parse_body(ProfileUpdate)
    user = db.update_profile(g.user.id, name=data.name, email=data.email)
    return jsonify(user.to_dict())


@auth_bp.route("/password", methods=["POST"])
@require_session
def change_password():
    data = parse_body(PasswordChange)
    _check_password_strength(data.new_password)
    db.change_password(g.user.id, data.current_password, data.new_password)

    # Other devices have to sign in again with the new password
    get_token_manager().revoke_user_tokens(g.user.id, keep=g.session_token)
    return jsonify({"success": True})
