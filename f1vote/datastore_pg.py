import os
import json
from typing import Any, Dict, List, Optional, Sequence

import psycopg2
from psycopg2 import pool as pg_pool
from psycopg2.extras import RealDictCursor, execute_values
from contextlib import contextmanager


_POOL: Optional[pg_pool.AbstractConnectionPool] = None

# Test account excluded from every player-facing list.
TEST_ACCOUNT = "testadmin"

_USER_COLUMNS = """
    u.id, u.username, u.password_hash, u.name, u.is_admin, u.avatar, u.created_at,
    u.team_id, t.name AS team_name,
    u.favorite_driver_slug, fd.name AS favorite_driver_name
"""
_USER_JOINS = """
    FROM users u
    LEFT JOIN teams t ON t.id = u.team_id
    LEFT JOIN drivers fd ON fd.slug = u.favorite_driver_slug
"""
_PLAYER_FILTER = "u.is_admin = FALSE AND u.username <> %s AND COALESCE(u.name, '') <> %s"

_DRIVER_COLUMNS = """
    d.slug, d.name, d.number, d.country, d.color, d.active, d.active_season,
    d.team_id, t.name AS team_name
"""

_RACE_COLUMNS = """
    id, round, name, location, date, country, circuit_id, track_image,
    is_testing, completed, results
"""


def _env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return int(val)
    except Exception:
        return default


def _connect_kwargs() -> Dict[str, Any]:
    """Common connection kwargs: connect_timeout + TCP keepalives.

    Defaults:
      - connect_timeout: 10 seconds (overridable via DB_CONNECT_TIMEOUT)
      - keepalives: enabled by default; can be disabled by DB_KEEPALIVES=0
      - keepalive tunables applied if provided (IDLE/INTERVAL/COUNT)
    """
    kwargs: Dict[str, Any] = {}
    ct_env = _env_int("DB_CONNECT_TIMEOUT")
    kwargs["connect_timeout"] = ct_env if ct_env is not None else 10

    ka_env = os.environ.get("DB_KEEPALIVES")
    if ka_env is None:
        kwargs["keepalives"] = 1
    else:
        kwargs["keepalives"] = 0 if str(ka_env).lower() in ("0", "false") else 1

    idle = _env_int("DB_KEEPALIVES_IDLE")
    if idle is not None:
        kwargs["keepalives_idle"] = idle
    interval = _env_int("DB_KEEPALIVES_INTERVAL")
    if interval is not None:
        kwargs["keepalives_interval"] = interval
    count = _env_int("DB_KEEPALIVES_COUNT")
    if count is not None:
        kwargs["keepalives_count"] = count
    return kwargs


def init_pool(minconn: int = 1, maxconn: int = 10) -> None:
    """Initialize a global connection pool using DATABASE_URL.

    Safe to call multiple times; subsequent calls are ignored once a pool exists.
    """
    global _POOL
    if _POOL is not None:
        return
    url = os.environ.get("DATABASE_URL")
    if not url:
        return
    _POOL = pg_pool.ThreadedConnectionPool(minconn, maxconn, dsn=url, **_connect_kwargs())


def _release(conn) -> None:
    # status 0 = idle, 1 = active, 2 = intrans, 3 = inerror
    try:
        if getattr(conn, "closed", 0) == 0 and not getattr(conn, "autocommit", False):
            if getattr(conn, "status", 0) in (1, 2, 3):
                try:
                    conn.rollback()
                except Exception:
                    pass
    finally:
        _POOL.putconn(conn)


@contextmanager
def _get_conn():
    """Yield a database connection from the pool if available, else direct.

    A pooled connection is pinged with ``SELECT 1`` first; a stale one is
    discarded and checkout is retried once.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set; configure a PostgreSQL connection string")
    if _POOL is not None:
        retried = False
        while True:
            conn = _POOL.getconn()
            healthy = True
            try:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                try:
                    if not getattr(conn, "autocommit", False):
                        conn.rollback()
                except Exception:
                    pass
            except (psycopg2.OperationalError, psycopg2.InterfaceError):
                healthy = False
            except Exception:
                healthy = False

            if not healthy:
                try:
                    _POOL.putconn(conn, close=True)
                except Exception:
                    pass
                if retried:
                    raise psycopg2.OperationalError("Failed to acquire healthy DB connection after retry")
                retried = True
                continue

            try:
                try:
                    yield conn
                except Exception:
                    try:
                        conn.rollback()
                    except Exception:
                        pass
                    raise
            finally:
                _release(conn)
            break
    else:
        conn = psycopg2.connect(url, **_connect_kwargs())
        try:
            try:
                yield conn
            except Exception:
                try:
                    conn.rollback()
                except Exception:
                    pass
                raise
        finally:
            try:
                conn.close()
            except Exception:
                pass


def _row(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    return dict(row) if row else None


def _race_row(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not row:
        return None
    race = dict(row)
    race["results"] = list(race.get("results") or [])
    race["completed"] = bool(race.get("completed"))
    race["is_testing"] = bool(race.get("is_testing"))
    return race


# ---------------------------------------------------------------- users

def get_user(user_id: int) -> Optional[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT {_USER_COLUMNS} {_USER_JOINS} WHERE u.id = %s", (int(user_id),))
        return _row(cur.fetchone())


def get_user_by_username(username: str) -> Optional[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT {_USER_COLUMNS} {_USER_JOINS} WHERE u.username = %s", (username,))
        return _row(cur.fetchone())


def create_user(
    username: str,
    password_hash: str,
    name: str,
    team_id: Optional[int] = None,
    favorite_driver_slug: Optional[str] = None,
    is_admin: bool = False,
) -> Dict[str, Any]:
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO users (username, password_hash, name, team_id, favorite_driver_slug, is_admin, avatar)
                VALUES (%s, %s, %s, %s, %s, %s, NULL)
                RETURNING id
                """,
                (username, password_hash, name, team_id, favorite_driver_slug, bool(is_admin)),
            )
            user_id = cur.fetchone()[0]
        conn.commit()
    return get_user(user_id)


def upsert_admin(username: str, password_hash: str, name: str = "Administrator") -> None:
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO users (username, password_hash, name, is_admin)
                VALUES (%s, %s, %s, TRUE)
                ON CONFLICT (username) DO UPDATE SET
                    is_admin = TRUE,
                    password_hash = EXCLUDED.password_hash
                """,
                (username, password_hash, name),
            )
        conn.commit()


def update_user_profile(user_id: int, name: str, team_id: Optional[int], favorite_driver_slug: Optional[str]) -> Dict[str, Any]:
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "UPDATE users SET name = %s, team_id = %s, favorite_driver_slug = %s WHERE id = %s",
                (name, team_id, favorite_driver_slug, int(user_id)),
            )
        conn.commit()
    return get_user(user_id)


def update_user_avatar(user_id: int, avatar: Optional[str]) -> None:
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("UPDATE users SET avatar = %s WHERE id = %s", (avatar, int(user_id)))
        conn.commit()


def list_players() -> List[Dict[str, Any]]:
    """Non-admin users except the test account, ordered by name."""
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"SELECT {_USER_COLUMNS} {_USER_JOINS} WHERE {_PLAYER_FILTER} ORDER BY u.name, u.id",
            (TEST_ACCOUNT, TEST_ACCOUNT),
        )
        return [dict(r) for r in cur.fetchall()]


def list_users_with_vote_counts() -> List[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT {_USER_COLUMNS},
                   (SELECT COUNT(*) FROM votes v WHERE v.user_id = u.id) AS race_vote_count,
                   (SELECT COUNT(*) FROM season_votes sv WHERE sv.user_id = u.id) AS season_vote_count,
                   (SELECT MAX(v.created_at) FROM votes v WHERE v.user_id = u.id) AS last_vote_at
            {_USER_JOINS}
            ORDER BY u.is_admin DESC, u.name, u.id
            """
        )
        return [dict(r) for r in cur.fetchall()]


def vote_counts_by_user() -> Dict[int, int]:
    """Race votes plus season votes per user."""
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute(
            """
            SELECT user_id, SUM(n) FROM (
                SELECT user_id, COUNT(*) AS n FROM votes GROUP BY user_id
                UNION ALL
                SELECT user_id, COUNT(*) AS n FROM season_votes GROUP BY user_id
            ) counts
            GROUP BY user_id
            """
        )
        return {int(uid): int(n) for uid, n in cur.fetchall()}


def delete_user(user_id: int) -> bool:
    with _get_conn() as conn:
        with conn.cursor() as cur:
            uid = int(user_id)
            cur.execute("DELETE FROM race_scores WHERE user_id = %s", (uid,))
            cur.execute("DELETE FROM votes WHERE user_id = %s", (uid,))
            cur.execute("DELETE FROM season_votes WHERE user_id = %s", (uid,))
            cur.execute("DELETE FROM users WHERE id = %s", (uid,))
            deleted = cur.rowcount > 0
        conn.commit()
    return deleted


# ---------------------------------------------------------------- teams / drivers

def list_teams() -> List[Dict[str, Any]]:
    """Teams by name, each with its drivers ordered by car number."""
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute("SELECT id, name, color FROM teams ORDER BY name")
        teams = [dict(r, drivers=[]) for r in cur.fetchall()]
        by_id = {t["id"]: t for t in teams}
        cur.execute(f"SELECT {_DRIVER_COLUMNS} FROM drivers d JOIN teams t ON t.id = d.team_id ORDER BY d.number")
        for r in cur.fetchall():
            team = by_id.get(r["team_id"])
            if team is not None:
                team["drivers"].append(dict(r))
    return teams


def get_team_by_name(name: str) -> Optional[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute("SELECT id, name, color FROM teams WHERE name = %s", (name,))
        return _row(cur.fetchone())


def upsert_team(name: str, color: Optional[str]) -> int:
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO teams (name, color) VALUES (%s, %s)
                ON CONFLICT (name) DO UPDATE SET color = EXCLUDED.color
                RETURNING id
                """,
                (name, color),
            )
            team_id = cur.fetchone()[0]
        conn.commit()
    return int(team_id)


def list_drivers(active: Optional[bool] = None, active_season: Optional[bool] = None, order_by: str = "name") -> List[Dict[str, Any]]:
    clauses = []
    params: List[Any] = []
    if active is not None:
        clauses.append("d.active = %s")
        params.append(bool(active))
    if active_season is not None:
        clauses.append("d.active_season = %s")
        params.append(bool(active_season))
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    order = "t.name, d.number" if order_by == "team" else "d.name"
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"SELECT {_DRIVER_COLUMNS} FROM drivers d JOIN teams t ON t.id = d.team_id {where} ORDER BY {order}",
            tuple(params),
        )
        return [dict(r) for r in cur.fetchall()]


def get_driver(slug: str) -> Optional[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"SELECT {_DRIVER_COLUMNS} FROM drivers d JOIN teams t ON t.id = d.team_id WHERE d.slug = %s",
            (slug,),
        )
        return _row(cur.fetchone())


def save_driver(driver: Dict[str, Any]) -> Dict[str, Any]:
    """Insert or update a driver keyed by slug; flags keep their stored value."""
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO drivers (slug, name, number, country, color, team_id)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (slug) DO UPDATE SET
                    name = EXCLUDED.name,
                    number = EXCLUDED.number,
                    country = EXCLUDED.country,
                    color = EXCLUDED.color,
                    team_id = EXCLUDED.team_id
                """,
                (
                    driver["slug"],
                    driver["name"],
                    int(driver["number"]),
                    driver.get("country"),
                    driver.get("color"),
                    int(driver["team_id"]),
                ),
            )
        conn.commit()
    return get_driver(driver["slug"])


def set_driver_flag(slug: str, field: str, value: bool) -> None:
    if field not in ("active", "active_season"):
        raise ValueError(f"Unknown driver flag: {field}")
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(f"UPDATE drivers SET {field} = %s WHERE slug = %s", (bool(value), slug))
        conn.commit()


def delete_driver(slug: str) -> None:
    """Delete a driver with its race and season votes; clear favourites."""
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM votes WHERE driver_slug = %s", (slug,))
            cur.execute("DELETE FROM season_votes WHERE driver_slug = %s", (slug,))
            cur.execute("UPDATE users SET favorite_driver_slug = NULL WHERE favorite_driver_slug = %s", (slug,))
            cur.execute("DELETE FROM drivers WHERE slug = %s", (slug,))
        conn.commit()


# ---------------------------------------------------------------- races

def list_races() -> List[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT {_RACE_COLUMNS} FROM races ORDER BY round")
        return [_race_row(r) for r in cur.fetchall()]


def get_race(round_no: int) -> Optional[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT {_RACE_COLUMNS} FROM races WHERE round = %s", (int(round_no),))
        return _race_row(cur.fetchone())


def get_race_by_id(race_id: int) -> Optional[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT {_RACE_COLUMNS} FROM races WHERE id = %s", (int(race_id),))
        return _race_row(cur.fetchone())


def save_race(race: Dict[str, Any]) -> Dict[str, Any]:
    """Insert a race, or update it in place when ``race['id']`` is set.

    Rounds are unique; renumbering a race moves its votes and scores along.
    """
    fields = (
        int(race["round"]),
        race["name"],
        race["location"],
        race["date"],
        race.get("country"),
        race.get("circuit_id"),
        race.get("track_image"),
        bool(race.get("is_testing")),
    )
    with _get_conn() as conn:
        with conn.cursor() as cur:
            if race.get("id") is None:
                cur.execute(
                    """
                    INSERT INTO races (round, name, location, date, country, circuit_id, track_image, is_testing)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    fields,
                )
                race_id = cur.fetchone()[0]
            else:
                race_id = int(race["id"])
                cur.execute("SELECT round FROM races WHERE id = %s", (race_id,))
                old = cur.fetchone()
                cur.execute(
                    """
                    UPDATE races SET round = %s, name = %s, location = %s, date = %s,
                        country = %s, circuit_id = %s, track_image = %s, is_testing = %s
                    WHERE id = %s
                    """,
                    fields + (race_id,),
                )
                if old and int(old[0]) != int(race["round"]):
                    cur.execute("UPDATE votes SET race_round = %s WHERE race_round = %s", (int(race["round"]), int(old[0])))
                    cur.execute("UPDATE race_scores SET race_round = %s WHERE race_round = %s", (int(race["round"]), int(old[0])))
        conn.commit()
    return get_race_by_id(race_id)


def upsert_race(race: Dict[str, Any]) -> None:
    """Insert or refresh a calendar entry keyed by round."""
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO races (round, name, location, date, is_testing)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (round) DO UPDATE SET
                    name = EXCLUDED.name,
                    location = EXCLUDED.location,
                    date = EXCLUDED.date,
                    is_testing = EXCLUDED.is_testing
                """,
                (int(race["round"]), race["name"], race["location"], race["date"], bool(race.get("is_testing"))),
            )
        conn.commit()


def delete_race(race_id: int) -> Optional[int]:
    """Delete a race with its votes and scores; return its round."""
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT round FROM races WHERE id = %s", (int(race_id),))
            row = cur.fetchone()
            if not row:
                return None
            round_no = int(row[0])
            cur.execute("DELETE FROM race_scores WHERE race_round = %s", (round_no,))
            cur.execute("DELETE FROM votes WHERE race_round = %s", (round_no,))
            cur.execute("DELETE FROM races WHERE id = %s", (int(race_id),))
        conn.commit()
    return round_no


def count_completed_races() -> int:
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute("SELECT COUNT(*) FROM races WHERE completed = TRUE")
        return int(cur.fetchone()[0])


def set_race_results(round_no: int, results: Sequence[str], completed: bool) -> None:
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "UPDATE races SET completed = %s, results = %s WHERE round = %s",
                (bool(completed), list(results), int(round_no)),
            )
        conn.commit()


# ---------------------------------------------------------------- race votes

def get_race_ballot(user_id: int, round_no: int) -> List[str]:
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute(
            "SELECT driver_slug FROM votes WHERE user_id = %s AND race_round = %s ORDER BY position",
            (int(user_id), int(round_no)),
        )
        return [r[0] for r in cur.fetchall()]


def replace_race_votes(user_id: int, round_no: int, slugs: Sequence[str]) -> None:
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM votes WHERE user_id = %s AND race_round = %s", (int(user_id), int(round_no)))
            if slugs:
                execute_values(
                    cur,
                    "INSERT INTO votes (user_id, race_round, position, driver_slug) VALUES %s",
                    [(int(user_id), int(round_no), idx, slug) for idx, slug in enumerate(slugs, start=1)],
                )
        conn.commit()


def list_race_votes(round_no: int) -> List[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT v.user_id, v.position, v.driver_slug
            FROM votes v JOIN users u ON u.id = v.user_id
            WHERE v.race_round = %s AND {_PLAYER_FILTER}
            ORDER BY v.user_id, v.position
            """,
            (int(round_no), TEST_ACCOUNT, TEST_ACCOUNT),
        )
        return [dict(r) for r in cur.fetchall()]


def list_user_race_votes(user_id: int) -> List[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            """
            SELECT v.race_round, v.position, v.driver_slug, d.name AS driver_name, v.created_at
            FROM votes v LEFT JOIN drivers d ON d.slug = v.driver_slug
            WHERE v.user_id = %s
            ORDER BY v.race_round, v.position
            """,
            (int(user_id),),
        )
        return [dict(r) for r in cur.fetchall()]


def race_voter_ids(round_no: int) -> set:
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute("SELECT DISTINCT user_id FROM votes WHERE race_round = %s", (int(round_no),))
        return {int(r[0]) for r in cur.fetchall()}


# ---------------------------------------------------------------- season votes

def list_season_votes(user_id: int, season: int) -> List[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT sv.position, sv.created_at, {_DRIVER_COLUMNS}
            FROM season_votes sv
            JOIN drivers d ON d.slug = sv.driver_slug
            JOIN teams t ON t.id = d.team_id
            WHERE sv.user_id = %s AND sv.season = %s
            ORDER BY sv.position
            """,
            (int(user_id), int(season)),
        )
        return [dict(r) for r in cur.fetchall()]


def add_season_vote(user_id: int, slug: str, season: int) -> Optional[int]:
    """Append a pick at the next position; return it, or None if already picked."""
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT 1 FROM season_votes WHERE user_id = %s AND driver_slug = %s AND season = %s",
                (int(user_id), slug, int(season)),
            )
            if cur.fetchone():
                return None
            cur.execute(
                "SELECT COALESCE(MAX(position), 0) + 1 FROM season_votes WHERE user_id = %s AND season = %s",
                (int(user_id), int(season)),
            )
            position = int(cur.fetchone()[0])
            cur.execute(
                "INSERT INTO season_votes (user_id, driver_slug, position, season) VALUES (%s, %s, %s, %s)",
                (int(user_id), slug, position, int(season)),
            )
        conn.commit()
    return position


def remove_season_vote(user_id: int, slug: str, season: int) -> None:
    """Delete one pick and close the gap it leaves."""
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "DELETE FROM season_votes WHERE user_id = %s AND driver_slug = %s AND season = %s",
                (int(user_id), slug, int(season)),
            )
            cur.execute(
                "SELECT id, position FROM season_votes WHERE user_id = %s AND season = %s ORDER BY position",
                (int(user_id), int(season)),
            )
            for idx, (vote_id, position) in enumerate(cur.fetchall(), start=1):
                if position != idx:
                    cur.execute("UPDATE season_votes SET position = %s WHERE id = %s", (idx, vote_id))
        conn.commit()


def replace_season_votes(user_id: int, season: int, slugs: Sequence[str]) -> None:
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "DELETE FROM season_votes WHERE user_id = %s AND season = %s",
                (int(user_id), int(season)),
            )
            if slugs:
                execute_values(
                    cur,
                    "INSERT INTO season_votes (user_id, driver_slug, position, season) VALUES %s",
                    [(int(user_id), slug, idx, int(season)) for idx, slug in enumerate(slugs, start=1)],
                )
        conn.commit()


def list_season_fallback_votes(season: int, max_position: int, exclude_user_ids: Sequence[int]) -> List[Dict[str, Any]]:
    """Season picks of players (no race ballot) used as a race fallback."""
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT sv.user_id, sv.position, sv.driver_slug, d.active_season
            FROM season_votes sv
            JOIN users u ON u.id = sv.user_id
            JOIN drivers d ON d.slug = sv.driver_slug
            WHERE sv.season = %s AND sv.position <= %s
              AND NOT (sv.user_id = ANY(%s))
              AND {_PLAYER_FILTER}
            ORDER BY sv.user_id, sv.position
            """,
            (int(season), int(max_position), [int(u) for u in exclude_user_ids], TEST_ACCOUNT, TEST_ACCOUNT),
        )
        return [dict(r) for r in cur.fetchall()]


def list_all_season_votes(season: int) -> List[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            """
            SELECT sv.user_id, sv.position, sv.driver_slug, d.active_season
            FROM season_votes sv JOIN drivers d ON d.slug = sv.driver_slug
            WHERE sv.season = %s
            ORDER BY sv.user_id, sv.position
            """,
            (int(season),),
        )
        return [dict(r) for r in cur.fetchall()]


# ---------------------------------------------------------------- scores

def upsert_race_scores(round_no: int, scores: Sequence[Dict[str, Any]]) -> None:
    if not scores:
        return
    with _get_conn() as conn:
        with conn.cursor() as cur:
            execute_values(
                cur,
                """
                INSERT INTO race_scores (user_id, race_round, total_points, perfect_predictions, details)
                VALUES %s
                ON CONFLICT (user_id, race_round) DO UPDATE SET
                    total_points = EXCLUDED.total_points,
                    perfect_predictions = EXCLUDED.perfect_predictions,
                    details = EXCLUDED.details
                """,
                [
                    (
                        int(s["user_id"]),
                        int(round_no),
                        int(s["total_points"]),
                        int(s["perfect_predictions"]),
                        json.dumps(s.get("details") or {}),
                    )
                    for s in scores
                ],
            )
        conn.commit()


def delete_race_scores(round_no: int) -> None:
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM race_scores WHERE race_round = %s", (int(round_no),))
        conn.commit()


def list_race_scores(round_no: int) -> List[Dict[str, Any]]:
    """Scores for one round with user info, best first; players only."""
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT rs.user_id, rs.race_round, rs.total_points, rs.perfect_predictions, rs.details,
                   u.name AS user_name, u.avatar
            FROM race_scores rs JOIN users u ON u.id = rs.user_id
            WHERE rs.race_round = %s AND {_PLAYER_FILTER}
            ORDER BY rs.total_points DESC, u.name
            """,
            (int(round_no), TEST_ACCOUNT, TEST_ACCOUNT),
        )
        return [dict(r) for r in cur.fetchall()]


def list_user_scores(user_id: int) -> List[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            "SELECT race_round, total_points, perfect_predictions, details FROM race_scores WHERE user_id = %s ORDER BY race_round",
            (int(user_id),),
        )
        return [dict(r) for r in cur.fetchall()]


def list_all_race_scores() -> List[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute("SELECT user_id, race_round, total_points, perfect_predictions FROM race_scores")
        return [dict(r) for r in cur.fetchall()]


# ---------------------------------------------------------------- season standings

def get_season_standings(season: int) -> Optional[List[str]]:
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute("SELECT results FROM season_standings WHERE season = %s", (int(season),))
        row = cur.fetchone()
        return list(row[0] or []) if row else None


def set_season_standings(season: int, results: Optional[Sequence[str]]) -> None:
    """Publish the final championship order, or clear it with ``None``."""
    with _get_conn() as conn:
        with conn.cursor() as cur:
            if results is None:
                cur.execute("DELETE FROM season_standings WHERE season = %s", (int(season),))
            else:
                cur.execute(
                    """
                    INSERT INTO season_standings (season, results, published_at)
                    VALUES (%s, %s, NOW())
                    ON CONFLICT (season) DO UPDATE SET results = EXCLUDED.results, published_at = NOW()
                    """,
                    (int(season), list(results)),
                )
        conn.commit()
