import os
import click
from pathlib import Path
from flask import Flask, jsonify, request, g
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from carmarket.extensions import db, migrate, cors
from carmarket.models import User
from carmarket.segments.segment_listings import listings_bp
from carmarket.segments.segment_promotions import promotions_bp
from carmarket.services.lifecycle import Role
from carmarket.utils.jwt_utils import DEFAULT_TTL_SECONDS, create_token
from carmarket.utils.observability import configure_logging, init_sentry, install_request_observers

SERVICE_NAME = "carmarket-listings"
DEFAULT_FEATURE_DAYS = 7
PROD_ENVS = ("prod", "production")
DEV_ENVS = ("dev", "development", "local", "test")
MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else int(default)
    except ValueError:
        value = int(default)
    return max(minimum, min(value, maximum))


def _current_env() -> str:
    return (os.getenv("CARMARKET_ENV") or os.getenv("FLASK_ENV") or "dev").strip().lower()


def _operator_tools_enabled() -> bool:
    if _current_env() in DEV_ENVS:
        return True
    return (os.getenv("ALLOW_ADMIN_BOOTSTRAP") or "").strip() == "1"


def _migration_head() -> str:
    try:
        from alembic.config import Config
        from alembic.script import ScriptDirectory

        cfg = Config(str(MIGRATIONS_DIR / "alembic.ini"))
        cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
        heads = ScriptDirectory.from_config(cfg).get_heads()
    except Exception:
        return "unknown"
    return heads[0] if heads else "unknown"


def _database_url(env: str) -> str:
    url = (os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL") or "").strip()
    if not url:
        if env in PROD_ENVS:
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")
        instance_dir = Path(__file__).resolve().parents[1] / "instance"
        instance_dir.mkdir(parents=True, exist_ok=True)
        return "sqlite:///" + (instance_dir / "carmarket.db").as_posix()
    # Managed Postgres providers still hand out the legacy scheme.
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def _configure(app: Flask, env: str) -> None:
    secret = (os.getenv("SECRET_KEY") or "").strip()
    if env in PROD_ENVS and len(secret) < 16:
        raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")

    database_url = _database_url(env)
    engine_options = {
        "pool_pre_ping": True,
        "pool_reset_on_return": "rollback",
        "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
    }
    if not database_url.startswith("sqlite://"):
        engine_options["pool_size"] = _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200)
        engine_options["max_overflow"] = _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500)
        engine_options["pool_timeout"] = _env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300)
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s",
            engine_options["pool_size"],
            engine_options["max_overflow"],
            engine_options["pool_timeout"],
        )

    app.config.update(
        SECRET_KEY=secret or "dev-secret",
        SQLALCHEMY_DATABASE_URI=database_url,
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SQLALCHEMY_ENGINE_OPTIONS=engine_options,
        LISTING_FEATURE_DEFAULT_DAYS=_env_int(
            "LISTING_FEATURE_DEFAULT_DAYS", DEFAULT_FEATURE_DAYS, minimum=1, maximum=365
        ),
    )

    raw_origins = [o.strip() for o in (os.getenv("CORS_ORIGINS") or "").split(",") if o.strip()]
    if not raw_origins and env not in PROD_ENVS:
        raw_origins = ["*"]
    cors.init_app(app, resources={r"/api/*": {"origins": raw_origins}}, expose_headers=["X-Request-Id"])


def _json_error(code: str, message: str, status: int):
    payload = {"ok": False, "error": code, "message": message, "status": int(status)}
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return jsonify(payload), int(status)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        # Keep API failures JSON-only for predictable client handling.
        if not request.path.startswith("/api/"):
            return error
        return _json_error(error.name, error.description or error.name, int(error.code or 500))

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s method=%s", request.path, request.method)
        db.session.rollback()
        return _json_error("InternalServerError", "Internal server error", 500)


def _register_probes(app: Flask, env: str) -> None:
    @app.get("/api/health")
    def health():
        db_state, db_error = "ok", None
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            db_error = str(e)[:300] or None
            app.logger.warning("health_db_probe_failed err=%s", db_error)
        payload = {
            "ok": True,
            "service": SERVICE_NAME,
            "env": env,
            "db": db_state,
            "git_sha": (os.getenv("GIT_SHA") or os.getenv("SOURCE_VERSION") or "unknown").strip(),
            "alembic_head": _migration_head(),
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload)


def _register_cli(app: Flask) -> None:
    @app.cli.command("bootstrap-admin")
    @click.option(
        "--role",
        "role_name",
        default=Role.Admin.value,
        type=click.Choice([Role.Admin.value, Role.SuperAdmin.value]),
        help="Platform role to grant",
    )
    def bootstrap_admin(role_name: str):
        """Create or promote the platform operator named by ADMIN_EMAIL."""
        if not _operator_tools_enabled():
            raise click.ClickException("Admin bootstrap disabled. Set ALLOW_ADMIN_BOOTSTRAP=1 or CARMARKET_ENV=dev.")

        email = (os.getenv("ADMIN_EMAIL") or "").strip().lower()
        password = (os.getenv("ADMIN_PASSWORD") or "").strip()
        phone = (os.getenv("ADMIN_PHONE") or "").strip() or None
        if not email or not password:
            raise click.ClickException("ADMIN_EMAIL and ADMIN_PASSWORD must be set.")

        operator = User.query.filter_by(email=email).first()
        if operator is None:
            operator = User(name=email.split("@")[0], email=email, phone=phone)
            db.session.add(operator)
        elif phone and not operator.phone:
            operator.phone = phone
        operator.role = role_name
        operator.set_password(password)
        try:
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            if "unique" in str(e).lower():
                raise click.ClickException("Email or phone already belongs to another user.")
            raise click.ClickException("Failed to bootstrap admin.")
        click.echo(f"admin_bootstrap_ok {operator.email} role={operator.role}")

    @app.cli.command("issue-token")
    @click.option("--user-id", "user_id", required=True, type=int, help="User to issue a token for")
    @click.option("--ttl", "ttl_seconds", default=DEFAULT_TTL_SECONDS, type=int, help="Token lifetime in seconds")
    def issue_token(user_id: int, ttl_seconds: int):
        """Print a bearer token for a local user (dev only)."""
        if not _operator_tools_enabled():
            raise click.ClickException("Token issuing disabled. Set ALLOW_ADMIN_BOOTSTRAP=1 or CARMARKET_ENV=dev.")
        user = db.session.get(User, int(user_id))
        if user is None:
            raise click.ClickException("User not found.")
        click.echo(create_token(int(user.id), ttl_seconds=max(60, int(ttl_seconds)), role=user.role))


def create_app():
    app = Flask(__name__)
    configure_logging(app)
    init_sentry(app)

    env = _current_env()
    _configure(app, env)

    db.init_app(app)
    migrate.init_app(app, db, directory=str(MIGRATIONS_DIR))
    install_request_observers(app)
    _register_error_handlers(app)

    app.register_blueprint(listings_bp)
    app.register_blueprint(promotions_bp)
    _register_probes(app, env)

    @app.before_request
    def _reset_db_session():
        db.session.rollback()

    @app.teardown_request
    def _cleanup_db_session(exc):
        try:
            if exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()

    _register_cli(app)
    return app
