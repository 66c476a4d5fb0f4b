#!/usr/bin/env python3
"""
Create the PostgreSQL schema and seed the built-in grid and calendar.

Usage: DATABASE_URL=postgres://... [ADMIN_PASSWORD=...] python init_db.py
"""
import os
import psycopg2

from f1vote import datastore_pg
from f1vote.auth import hash_password
from f1vote.seed_data import DRIVERS, RACES, TEAMS


def create_tables(conn):
    """Create the database schema"""
    with conn.cursor() as cur:
        cur.execute("""
            CREATE TABLE IF NOT EXISTS teams (
                id SERIAL PRIMARY KEY,
                name VARCHAR(100) UNIQUE NOT NULL,
                color VARCHAR(200)
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS drivers (
                slug VARCHAR(20) PRIMARY KEY,
                name VARCHAR(100) NOT NULL,
                number INTEGER NOT NULL,
                country VARCHAR(10),
                color VARCHAR(200),
                team_id INTEGER NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
                active BOOLEAN NOT NULL DEFAULT TRUE,
                active_season BOOLEAN NOT NULL DEFAULT TRUE
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id SERIAL PRIMARY KEY,
                username VARCHAR(100) UNIQUE NOT NULL,
                password_hash VARCHAR(255) NOT NULL,
                name VARCHAR(100),
                team_id INTEGER REFERENCES teams(id) ON DELETE SET NULL,
                favorite_driver_slug VARCHAR(20) REFERENCES drivers(slug) ON DELETE SET NULL,
                is_admin BOOLEAN NOT NULL DEFAULT FALSE,
                avatar VARCHAR(500),
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS races (
                id SERIAL PRIMARY KEY,
                round INTEGER UNIQUE NOT NULL,
                name VARCHAR(200) NOT NULL,
                location VARCHAR(200) NOT NULL,
                date TIMESTAMPTZ NOT NULL,
                country VARCHAR(10),
                circuit_id VARCHAR(100),
                track_image VARCHAR(500),
                is_testing BOOLEAN NOT NULL DEFAULT FALSE,
                completed BOOLEAN NOT NULL DEFAULT FALSE,
                results TEXT[] NOT NULL DEFAULT '{}'
            )
        """)

        # One row per (user, race, position) of a race ballot
        cur.execute("""
            CREATE TABLE IF NOT EXISTS votes (
                id SERIAL PRIMARY KEY,
                user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                race_round INTEGER NOT NULL,
                position INTEGER NOT NULL,
                driver_slug VARCHAR(20) NOT NULL REFERENCES drivers(slug) ON DELETE CASCADE,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                UNIQUE(user_id, race_round, position),
                UNIQUE(user_id, race_round, driver_slug)
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS season_votes (
                id SERIAL PRIMARY KEY,
                user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                driver_slug VARCHAR(20) NOT NULL REFERENCES drivers(slug) ON DELETE CASCADE,
                position INTEGER NOT NULL,
                season INTEGER NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                UNIQUE(user_id, driver_slug, season)
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS race_scores (
                id SERIAL PRIMARY KEY,
                user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                race_round INTEGER NOT NULL,
                total_points INTEGER NOT NULL DEFAULT 0,
                perfect_predictions INTEGER NOT NULL DEFAULT 0,
                details JSONB,
                UNIQUE(user_id, race_round)
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS season_standings (
                season INTEGER PRIMARY KEY,
                results TEXT[] NOT NULL,
                published_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)

        cur.execute("CREATE INDEX IF NOT EXISTS idx_votes_race_round ON votes(race_round)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_season_votes_user ON season_votes(user_id, season)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_race_scores_round ON race_scores(race_round)")

        conn.commit()
        print("Database schema created successfully")


def seed_grid():
    """Teams, drivers and the race calendar; existing rows are refreshed."""
    team_ids = {team["name"]: datastore_pg.upsert_team(team["name"], team["color"]) for team in TEAMS}
    for driver in DRIVERS:
        datastore_pg.save_driver({**driver, "team_id": team_ids[driver["team"]]})
    for race in RACES:
        datastore_pg.upsert_race(race)
    print(f"Seeded {len(TEAMS)} teams, {len(DRIVERS)} drivers, {len(RACES)} races")


def seed_admin():
    password = os.environ.get("ADMIN_PASSWORD")
    if not password:
        print("ADMIN_PASSWORD not set; skipping admin account")
        return
    username = os.environ.get("ADMIN_USERNAME", "admin")
    datastore_pg.upsert_admin(username, hash_password(password))
    print(f"Admin account '{username}' ready")


def main():
    database_url = os.environ.get('DATABASE_URL')
    if not database_url:
        print("ERROR: DATABASE_URL environment variable not set")
        raise SystemExit(1)

    conn = psycopg2.connect(database_url)
    try:
        print("Connected to PostgreSQL database")
        create_tables(conn)
    finally:
        conn.close()

    seed_grid()
    seed_admin()

    with datastore_pg._get_conn() as conn, conn.cursor() as cur:
        cur.execute("SELECT COUNT(*) FROM users")
        user_count = cur.fetchone()[0]
    print(f"\nSummary:\n- {user_count} users")


if __name__ == "__main__":
    main()
