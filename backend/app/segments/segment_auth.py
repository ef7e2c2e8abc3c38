import hashlib
import hmac
import math
import os
import secrets
from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request

from app.extensions import db
from app.models import PasswordResetToken, User, VerificationToken
from app.utils.auth_guard import current_user
from app.utils.jwt_utils import access_token_ttl_seconds, create_access_token
from app.utils.mailer import send_password_reset_email, send_verification_email
from app.utils.validation import (
    ValidationError,
    validate_password,
    validate_registration,
    validation_error_response,
)


auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/auth")

MAX_FAILED_LOGINS = 5
LOCKOUT_MINUTES = 15
VERIFICATION_TTL = timedelta(hours=24)
RESET_TTL = timedelta(hours=1)
RESEND_COOLDOWN_SECONDS = 60
GENERIC_RESET_MESSAGE = "If an account exists with this email, you will receive a password reset link."


def _hash_token(value: str) -> str:
    secret = (current_app.config.get("SECRET_KEY") or os.getenv("SECRET_KEY") or "lotosale").encode("utf-8")
    return hmac.new(secret, value.encode("utf-8"), hashlib.sha256).hexdigest()


def _generate_token() -> str:
    return secrets.token_hex(32)


def issue_verification_token(user: User) -> str:
    """Replace any outstanding verification token and return the raw value."""
    VerificationToken.query.filter_by(user_id=int(user.id)).delete(synchronize_session=False)
    token = _generate_token()
    db.session.add(
        VerificationToken(
            user_id=int(user.id),
            token_hash=_hash_token(token),
            expires_at=datetime.utcnow() + VERIFICATION_TTL,
        )
    )
    return token


def issue_password_reset_token(user: User) -> str:
    PasswordResetToken.query.filter_by(user_id=int(user.id)).delete(synchronize_session=False)
    token = _generate_token()
    db.session.add(
        PasswordResetToken(
            user_id=int(user.id),
            token_hash=_hash_token(token),
            expires_at=datetime.utcnow() + RESET_TTL,
        )
    )
    return token


def _session_payload(user: User) -> dict:
    ttl = access_token_ttl_seconds()
    token = create_access_token(int(user.id), role=user.role, ttl_seconds=ttl)
    expires_at = datetime.utcnow() + timedelta(seconds=ttl)
    return {
        "ok": True,
        "token": token,
        "expires_at": expires_at.replace(microsecond=0).isoformat() + "Z",
        "user": user.to_dict(),
    }


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    try:
        clean = validate_registration(data)
    except ValidationError as e:
        return validation_error_response(e)

    if User.query.filter_by(email=clean["email"]).first() is not None:
        return jsonify({"ok": False, "message": "An account with this email already exists"}), 409

    user = User(
        name=clean["name"],
        email=clean["email"],
        phone=clean["phone"],
        city=clean["city"],
        province=clean["province"],
        role=clean["role"],
    )
    user.set_password(clean["password"])
    try:
        db.session.add(user)
        db.session.flush()
        token = issue_verification_token(user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("register_failed")
        return jsonify({"ok": False, "message": "An error occurred during registration. Please try again."}), 500

    if not send_verification_email(user, token):
        current_app.logger.warning("register_verification_email_not_sent user_id=%s", user.id)
    current_app.logger.info("user_registered user_id=%s role=%s", user.id, user.role)
    return jsonify(
        {
            "ok": True,
            "message": "Account created successfully! Please check your email to verify your account.",
            "user": user.to_dict(),
        }
    ), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        return jsonify({"ok": False, "message": "Email and password are required"}), 400

    user = User.query.filter_by(email=email).first()
    if user is None:
        return jsonify({"ok": False, "message": "Invalid credentials"}), 401

    now = datetime.utcnow()
    if user.is_locked(now):
        minutes = max(1, math.ceil((user.lockout_until - now).total_seconds() / 60.0))
        return jsonify(
            {"ok": False, "error": "ACCOUNT_LOCKED", "message": f"Account locked. Try again in {minutes} minutes."}
        ), 423

    if not user.check_password(password):
        user.failed_login_attempts = int(user.failed_login_attempts or 0) + 1
        if user.failed_login_attempts >= MAX_FAILED_LOGINS:
            user.lockout_until = now + timedelta(minutes=LOCKOUT_MINUTES)
            current_app.logger.warning("login_lockout user_id=%s", user.id)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception("login_failed_attempt_update_failed")
        return jsonify({"ok": False, "message": "Invalid credentials"}), 401

    if user.failed_login_attempts or user.lockout_until:
        user.failed_login_attempts = 0
        user.lockout_until = None
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception("login_counter_reset_failed")

    if not user.is_email_verified:
        return jsonify(
            {"ok": False, "error": "EMAIL_NOT_VERIFIED", "message": "Please verify your email before logging in"}
        ), 403

    current_app.logger.info("login_ok user_id=%s", user.id)
    return jsonify(_session_payload(user)), 200


@auth_bp.get("/me")
def me():
    user = current_user()
    if user is None:
        return jsonify({"message": "Unauthorized"}), 401
    return jsonify({"ok": True, "user": user.to_dict()}), 200


@auth_bp.post("/verify-email")
def verify_email():
    data = request.get_json(silent=True) or {}
    token = (data.get("token") or request.args.get("token") or "").strip()
    if not token:
        return jsonify({"ok": False, "message": "Verification token is required"}), 400

    rec = VerificationToken.query.filter_by(token_hash=_hash_token(token)).first()
    if rec is None:
        return jsonify({"ok": False, "message": "Invalid verification token"}), 400

    if rec.is_expired():
        db.session.delete(rec)
        db.session.commit()
        return jsonify({"ok": False, "message": "Verification token has expired"}), 400

    user = db.session.get(User, int(rec.user_id))
    if user is None:
        db.session.delete(rec)
        db.session.commit()
        return jsonify({"ok": False, "message": "Invalid verification token"}), 400

    try:
        user.email_verified = datetime.utcnow()
        db.session.delete(rec)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("email_verify_confirm_failed")
        return jsonify({"ok": False, "message": "Failed to verify email"}), 500
    current_app.logger.info("email_verify_confirmed user_id=%s", user.id)
    return jsonify({"ok": True, "message": "Email verified successfully"}), 200


@auth_bp.post("/verify-email/resend")
def resend_verify_email():
    data = request.get_json(silent=True) or {}
    user = current_user()
    if user is None:
        email = (data.get("email") or "").strip().lower()
        user = User.query.filter_by(email=email).first() if email else None
    if user is None:
        return jsonify({"ok": True, "message": "If the account exists, a verification email has been sent."}), 200
    if user.is_email_verified:
        return jsonify({"ok": True, "message": "Email is already verified"}), 200

    last = (
        VerificationToken.query.filter_by(user_id=int(user.id))
        .order_by(VerificationToken.created_at.desc())
        .first()
    )
    if last is not None:
        elapsed = (datetime.utcnow() - last.created_at).total_seconds()
        if elapsed < RESEND_COOLDOWN_SECONDS:
            wait = int(RESEND_COOLDOWN_SECONDS - elapsed)
            return jsonify(
                {"ok": True, "message": "Please wait before resending", "retry_after_seconds": wait}
            ), 200

    try:
        token = issue_verification_token(user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("email_verify_resend_failed")
        return jsonify({"ok": False, "message": "Failed to send verification email"}), 500
    send_verification_email(user, token)
    current_app.logger.info("email_verify_resend user_id=%s", user.id)
    return jsonify({"ok": True, "message": "Verification email sent"}), 200


@auth_bp.post("/password/forgot")
def password_forgot():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    user = User.query.filter_by(email=email).first() if email else None
    if user is None:
        return jsonify({"ok": True, "message": GENERIC_RESET_MESSAGE}), 200

    try:
        token = issue_password_reset_token(user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("password_reset_request_failed")
        return jsonify({"ok": True, "message": GENERIC_RESET_MESSAGE}), 200

    send_password_reset_email(user, token)
    current_app.logger.info("password_reset_requested user_id=%s", user.id)
    return jsonify({"ok": True, "message": GENERIC_RESET_MESSAGE}), 200


@auth_bp.post("/password/reset")
def password_reset():
    data = request.get_json(silent=True) or {}
    token = (data.get("token") or "").strip()
    password = str(data.get("password") or "")
    confirm = str(data.get("confirmPassword") or data.get("confirm_password") or "")
    if not token:
        return jsonify({"ok": False, "message": "Reset token is required"}), 400

    rec = PasswordResetToken.query.filter_by(token_hash=_hash_token(token)).first()
    if rec is None:
        return jsonify({"ok": False, "message": "Invalid reset token"}), 400
    if rec.is_expired():
        db.session.delete(rec)
        db.session.commit()
        return jsonify({"ok": False, "message": "Reset token has expired"}), 400

    errors = validate_password(password)
    if errors:
        return validation_error_response(ValidationError({"password": errors[0]}))
    if password != confirm:
        return validation_error_response(ValidationError({"confirmPassword": "Passwords do not match"}))

    user = db.session.get(User, int(rec.user_id))
    if user is None:
        return jsonify({"ok": False, "message": "Invalid reset token"}), 400

    try:
        user.set_password(password)
        user.failed_login_attempts = 0
        user.lockout_until = None
        db.session.delete(rec)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("password_reset_failed")
        return jsonify({"ok": False, "message": "Failed to reset password"}), 500
    current_app.logger.info("password_reset_completed user_id=%s", user.id)
    return jsonify({"ok": True, "message": "Password reset successfully"}), 200
