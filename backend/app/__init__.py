import os
import subprocess
from datetime import datetime
from pathlib import Path

import click
import sentry_sdk
from flask import Flask, g, jsonify, request
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from app.extensions import cors, db, migrate
from app.integrations.email.factory import email_health
from app.integrations.media.factory import media_health
from app.integrations.vision.factory import vision_health
from app.models import CATEGORIES, Category, User
from app.segments.segment_admin import admin_bp
from app.segments.segment_admin_categories import admin_categories_bp, categories_bp
from app.segments.segment_admin_dashboard import admin_dashboard_bp
from app.segments.segment_admin_users import admin_users_bp
from app.segments.segment_ai import ai_bp
from app.segments.segment_auth import auth_bp
from app.segments.segment_listings import listings_bp
from app.segments.segment_offers import offers_bp
from app.utils.jwt_utils import decode_token, get_bearer_token
from app.utils.observability import SERVICE_NAME, init_otel, init_sentry, install_request_observers
from app.utils.rate_limit import install_api_rate_guard
from app.utils.validation import slugify


SEED_CATEGORIES = {
    "ELECTRONICS": ("Electronics", "smartphone"),
    "CLOTHING": ("Clothing", "shirt"),
    "HOME_GARDEN": ("Home & Garden", "home"),
    "SPORTS": ("Sports", "dumbbell"),
    "BOOKS": ("Books", "book"),
    "TOYS": ("Toys", "puzzle"),
    "VEHICLES": ("Vehicles", "car"),
    "COLLECTIBLES": ("Collectibles", "gem"),
    "BABY_KIDS": ("Baby & Kids", "baby"),
    "PET_SUPPLIES": ("Pet Supplies", "paw-print"),
}


def _resolve_alembic_head() -> str:
    try:
        from alembic.config import Config
        from alembic.script import ScriptDirectory

        migrations_dir = Path(__file__).resolve().parents[1] / "migrations"
        cfg = Config(str(migrations_dir / "alembic.ini"))
        cfg.set_main_option("script_location", str(migrations_dir))
        heads = ScriptDirectory.from_config(cfg).get_heads()
        return heads[0] if heads else "unknown"
    except Exception:
        return "unknown"


def _resolve_git_sha() -> str:
    for env_key in ("RENDER_GIT_COMMIT", "GIT_SHA", "SOURCE_VERSION"):
        val = (os.getenv(env_key) or "").strip()
        if val:
            return val
    try:
        out = subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            cwd=str(Path(__file__).resolve().parents[1]),
            stderr=subprocess.DEVNULL,
        )
        return out.decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else int(default)
    except ValueError:
        value = int(default)
    return max(minimum, min(value, maximum))


def _cli_allowed() -> bool:
    env = (os.getenv("LOTOSALE_ENV") or os.getenv("FLASK_ENV") or "dev").strip().lower()
    allow = (os.getenv("ALLOW_ADMIN_BOOTSTRAP") or "").strip() == "1"
    return env in ("dev", "development", "local", "test") or allow


def _error_payload(error: str, message: str, status: int) -> dict:
    payload = {"ok": False, "error": error, "message": message, "status": status}
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return payload


def create_app():
    app = Flask(__name__)
    init_sentry(app)

    env = (os.getenv("LOTOSALE_ENV", "dev") or "dev").strip().lower()
    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")

    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not database_url:
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 8 * 1024 * 1024
    for key in (
        "AI_PROVIDER",
        "OPENAI_API_KEY",
        "OPENAI_MODEL",
        "OPENAI_FALLBACK_MODEL",
        "OPENAI_TIMEOUT_SECONDS",
        "MEDIA_PROVIDER",
        "EMAIL_PROVIDER",
        "EMAIL_FROM",
        "PUBLIC_BASE_URL",
    ):
        value = (os.getenv(key) or "").strip()
        if value:
            app.config[key] = value

    instance_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "instance"))
    os.makedirs(instance_dir, exist_ok=True)
    if not database_url:
        database_url = f"sqlite:///{os.path.join(instance_dir, 'lotosale.db').replace(os.sep, '/')}"
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url

    engine_options = {
        "pool_pre_ping": True,
        "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
    }
    if not database_url.startswith("sqlite://"):
        engine_options.update(
            {
                "pool_size": _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
                "max_overflow": _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
                "pool_timeout": _env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
            }
        )
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s",
            engine_options["pool_size"],
            engine_options["max_overflow"],
            engine_options["pool_timeout"],
        )
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    cors_origins = [o.strip() for o in (os.getenv("CORS_ORIGINS") or "").split(",") if o.strip()]
    if not cors_origins and env not in ("prod", "production"):
        cors_origins = ["*"]
    cors.init_app(app, resources={r"/api/*": {"origins": cors_origins}})

    db.init_app(app)
    migrate.init_app(app, db, directory=str(Path(__file__).resolve().parents[1] / "migrations"))
    install_request_observers(app)
    with app.app_context():
        init_otel(app, enabled=(os.getenv("OTEL_ENABLED") or "").strip() == "1")

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        if not request.path.startswith("/api/"):
            return error
        status = int(error.code or 500)
        return jsonify(_error_payload(error.name, error.description or error.name, status)), status

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        try:
            db.session.rollback()
        except Exception:
            app.logger.warning("unhandled_exception_rollback_failed")
        return jsonify(_error_payload("InternalServerError", "Internal server error", 500)), 500

    app.register_blueprint(auth_bp)
    app.register_blueprint(listings_bp)
    app.register_blueprint(offers_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(ai_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(admin_categories_bp)
    app.register_blueprint(admin_users_bp)
    app.register_blueprint(admin_dashboard_bp)

    @app.get("/api/health")
    def health():
        db_state = "ok"
        db_error = None
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            msg = str(e)
            db_error = (msg[:300] + "...") if len(msg) > 300 else msg
        payload = {
            "ok": True,
            "service": SERVICE_NAME,
            "env": env,
            "db": db_state,
            "git_sha": _resolve_git_sha(),
            "alembic_head": _resolve_alembic_head(),
            "integrations": {
                "vision": vision_health(app.config),
                "media": media_health(app.config),
                "email": email_health(app.config),
            },
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload)

    @app.get("/")
    def root():
        return jsonify({"ok": True, "service": SERVICE_NAME, "env": env})

    @app.get("/api/version")
    def version():
        return jsonify({"ok": True, "alembic_head": _resolve_alembic_head(), "git_sha": _resolve_git_sha()})

    @app.before_request
    def _capture_auth_context():
        g.auth_user_id = None
        g.auth_role = None
        token = get_bearer_token(request.headers.get("Authorization", ""))
        if not token:
            return
        payload = decode_token(token)
        if not payload:
            return
        try:
            uid = int(payload.get("sub"))
        except (TypeError, ValueError):
            return
        g.auth_user_id = uid
        try:
            user = db.session.get(User, uid)
        except Exception:
            db.session.rollback()
            return
        if user is None:
            return
        g.auth_role = (user.role or "BUYER").upper()
        sentry_sdk.set_user({"id": str(uid)})
        sentry_sdk.set_tag("auth_role", g.auth_role)

    install_api_rate_guard(app, _error_payload)

    @app.teardown_request
    def _cleanup_db_session(exc):
        try:
            if exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()

    @app.cli.command("bootstrap-admin")
    def bootstrap_admin():
        if not _cli_allowed():
            raise click.ClickException("Admin bootstrap disabled. Set ALLOW_ADMIN_BOOTSTRAP=1 or LOTOSALE_ENV=dev.")
        email = (os.getenv("ADMIN_EMAIL") or "").strip().lower()
        password = (os.getenv("ADMIN_PASSWORD") or "").strip()
        if not email or not password:
            raise click.ClickException("ADMIN_EMAIL and ADMIN_PASSWORD must be set.")

        u = User.query.filter_by(email=email).first()
        try:
            if u is None:
                u = User(name=email.split("@")[0], email=email)
                db.session.add(u)
            u.set_password(password)
            u.role = "ADMIN"
            u.email_verified = u.email_verified or datetime.utcnow()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise click.ClickException("Failed to bootstrap admin.")
        click.echo(f"admin_bootstrap_ok {u.email}")

    @app.cli.command("admin-reset-password")
    @click.option("--email", "email", required=False, help="Admin email to reset")
    @click.option("--password", "password", required=False, help="New password")
    def admin_reset_password(email: str | None, password: str | None):
        if not _cli_allowed():
            raise click.ClickException("Admin reset disabled. Set ALLOW_ADMIN_BOOTSTRAP=1 or LOTOSALE_ENV=dev.")
        email = (email or os.getenv("ADMIN_EMAIL") or "").strip().lower()
        password = (password or os.getenv("ADMIN_PASSWORD") or "").strip()
        if not email or not password:
            raise click.ClickException("Provide --email/--password or set ADMIN_EMAIL and ADMIN_PASSWORD.")

        u = User.query.filter_by(email=email).first()
        if u is None:
            raise click.ClickException("Admin user not found.")
        if not u.is_admin:
            raise click.ClickException("Target user is not admin.")
        u.set_password(password)
        u.failed_login_attempts = 0
        u.lockout_until = None
        db.session.commit()
        click.echo(f"admin_password_reset_ok {u.email}")

    @app.cli.command("seed-categories")
    def seed_categories():
        created = 0
        for key in CATEGORIES:
            name, icon = SEED_CATEGORIES[key]
            slug = slugify(name)
            if Category.query.filter_by(slug=slug).first() is not None:
                continue
            db.session.add(Category(name=name, slug=slug, icon=icon, is_active=True))
            created += 1
        db.session.commit()
        click.echo(f"seed_categories_ok created={created}")

    return app
