import os
import secrets
from datetime import datetime, timedelta
from flask import Flask

DEFAULT_SEASON_YEAR = 2026
DEFAULT_SEASON_LOCK_AT = "2026-03-08T05:00:00+00:00"


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def create_app(config=None):
    app = Flask(__name__, instance_relative_config=True)

    # PostgreSQL-only configuration
    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        raise RuntimeError("DATABASE_URL is required; configure a PostgreSQL connection string.")

    secret = os.environ.get("SECRET_KEY")
    if not secret:
        app.logger.warning("SECRET_KEY not set; sessions will not survive a restart")
        secret = secrets.token_hex(32)

    lock_raw = os.environ.get("SEASON_LOCK_AT", DEFAULT_SEASON_LOCK_AT)
    try:
        lock_at = datetime.fromisoformat(lock_raw)
    except ValueError:
        app.logger.warning("Invalid SEASON_LOCK_AT %r; using %s", lock_raw, DEFAULT_SEASON_LOCK_AT)
        lock_at = datetime.fromisoformat(DEFAULT_SEASON_LOCK_AT)

    app.config.update(
        SECRET_KEY=secret,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_SECURE=os.environ.get("SESSION_COOKIE_SECURE", "0").lower() in ("1", "true"),
        PERMANENT_SESSION_LIFETIME=timedelta(days=30),
        SEASON_YEAR=_env_int("SEASON_YEAR", DEFAULT_SEASON_YEAR),
        SEASON_LOCK_AT=lock_at,
        UPLOAD_DIR=os.environ.get("UPLOAD_DIR") or os.path.join(app.instance_path, "uploads"),
        MAX_CONTENT_LENGTH=4 * 1024 * 1024,
        CACHE_TTL_LEADERBOARD=_env_int("CACHE_TTL_LEADERBOARD", 60),
    )
    if config:
        app.config.update(config)

    # Initialize connection pool early (optional; direct connect works if pool init fails)
    try:
        from . import datastore_pg as _pg
        _pg.init_pool(minconn=_env_int("DB_POOL_MIN", 1), maxconn=_env_int("DB_POOL_MAX", 10))
    except Exception:  # pragma: no cover
        app.logger.exception("PostgreSQL pool initialization failed; continuing without pool")

    from . import auth, routes, admin
    app.before_request(auth.gate_request)
    app.register_blueprint(routes.bp)
    app.register_blueprint(admin.bp)

    @app.context_processor
    def _inject_user():
        user = auth.current_user()
        return {
            "current_user": user,
            "current_avatar": auth.avatar_url(user) if user else None,
            "season_year": app.config["SEASON_YEAR"],
        }

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    create_app().run(host='0.0.0.0', port=port)
