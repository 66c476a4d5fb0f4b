"""Session handling, password hashing and the per-request route gate."""

from functools import wraps
from typing import Any, Dict, Optional
from urllib.parse import quote

from flask import current_app, g, redirect, request, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from . import calendar
from . import datastore as ds

# Routes reachable without a session
PUBLIC_ROUTES = ("/login", "/register", "/invite", "/privacy")
# Routes only for admins
ADMIN_ROUTES = ("/admin",)
# Routes only for regular users
USER_ONLY_ROUTES = ("/calendar", "/season", "/race", "/profile", "/leaderboard")
# Never redirected by the gate; JSON endpoints check auth themselves
UNGATED_PREFIXES = ("/static", "/uploads", "/health", "/api")


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: Optional[str], password: str) -> bool:
    if not password_hash or not password:
        return False
    return check_password_hash(password_hash, password)


def login_user(user: Dict[str, Any]) -> None:
    session.clear()
    session["user_id"] = int(user["id"])
    session["is_admin"] = bool(user.get("is_admin"))
    session.permanent = True


def logout_user() -> None:
    session.clear()
    g.pop("_current_user", None)


def current_user() -> Optional[Dict[str, Any]]:
    """Return the signed-in user row, loading it once per request."""
    if "_current_user" in g:
        return g._current_user
    user = None
    user_id = session.get("user_id")
    if user_id is not None:
        user = ds.get_user(int(user_id))
        if user is None:
            # Stale cookie for a deleted account
            session.clear()
    g._current_user = user
    return user


def avatar_url(user: Optional[Dict[str, Any]]) -> str:
    """Uploaded avatar, or a generated initials badge."""
    if user and user.get("avatar"):
        return user["avatar"]
    name = (user or {}).get("name") or (user or {}).get("user_name") or "U"
    return f"https://ui-avatars.com/api/?name={quote(name)}&background=E60000&color=fff&bold=true"


def has_completed_season_picks(user: Optional[Dict[str, Any]]) -> bool:
    """True once the user ranked every season-active driver.

    Anonymous users pass, so the guard never blocks them.
    """
    if not user:
        return True
    season = current_app.config["SEASON_YEAR"]
    total = len(ds.list_drivers(active_season=True))
    return len(ds.list_season_votes(user["id"], season)) >= total


def season_locked() -> bool:
    return calendar.is_season_locked(current_app.config["SEASON_LOCK_AT"], calendar.utcnow())


def _matches(path: str, prefixes) -> bool:
    return any(path == p or path.startswith(p + "/") for p in prefixes)


def gate_request():
    """Route gate run before every request.

    Anonymous visitors only reach public pages; admins are kept in the admin
    panel; regular users are kept out of it and sent to finish their season
    picks while the season is still open.
    """
    path = request.path or "/"
    if _matches(path, UNGATED_PREFIXES):
        return None

    user = current_user()
    is_public = _matches(path, PUBLIC_ROUTES)
    is_admin_route = _matches(path, ADMIN_ROUTES)
    is_user_route = _matches(path, USER_ONLY_ROUTES)

    if user is None:
        if is_public or path == "/":
            return None
        return redirect(url_for("main.login"))

    if user.get("is_admin"):
        if is_user_route or path == "/":
            return redirect(url_for("admin.dashboard"))
        return None

    if is_admin_route or path == "/":
        return redirect(url_for("main.calendar_page"))

    if is_user_route and not path.startswith("/season") and not season_locked():
        if not has_completed_season_picks(user):
            return redirect(url_for("main.season"))
    return None


def login_required(fn):
    """For JSON endpoints: 401 without a session."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if current_user() is None:
            return {"error": "Not logged in"}, 401
        return fn(*args, **kwargs)
    return wrapper


def admin_required(fn):
    """For JSON endpoints: 401 without a session, 403 for non-admins."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = current_user()
        if user is None:
            return {"error": "Not logged in"}, 401
        if not user.get("is_admin"):
            return {"error": "Admin privileges required"}, 403
        return fn(*args, **kwargs)
    return wrapper
