from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from .config import DB_PATH


def init_db() -> None:
    with sqlite3.connect(DB_PATH) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS crimes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                lat REAL NOT NULL,
                lng REAL NOT NULL,
                category TEXT NOT NULL,
                severity TEXT NOT NULL DEFAULT 'medium',
                description TEXT,
                incident_date TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS ratings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                lat REAL NOT NULL,
                lng REAL NOT NULL,
                safety_score INTEGER NOT NULL,
                comment TEXT,
                time_of_day TEXT NOT NULL,
                day_of_week TEXT NOT NULL,
                route_type TEXT NOT NULL DEFAULT 'walking',
                created_at TEXT NOT NULL
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_crimes_lat_lng ON crimes(lat, lng)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_ratings_lat_lng ON ratings(lat, lng)")


@contextmanager
def get_conn():
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def days_ago_iso(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


def box_params(lat: float, lng: float, radius: float) -> tuple[float, float, float, float]:
    return (lat - radius, lat + radius, lng - radius, lng + radius)


def incidents_near(lat: float, lng: float, radius: float) -> list[dict]:
    with get_conn() as conn:
        rows = conn.execute(
            """
            SELECT id, lat, lng, category, severity, description, incident_date, created_at
            FROM crimes
            WHERE lat BETWEEN ? AND ? AND lng BETWEEN ? AND ?
            ORDER BY incident_date DESC
            """,
            box_params(lat, lng, radius),
        ).fetchall()
    return [dict(r) for r in rows]


def ratings_near(lat: float, lng: float, radius: float, since: str | None = None, limit: int | None = None) -> list[dict]:
    query = (
        "SELECT id, lat, lng, safety_score, comment, time_of_day, day_of_week, route_type, created_at "
        "FROM ratings WHERE lat BETWEEN ? AND ? AND lng BETWEEN ? AND ?"
    )
    params: list = list(box_params(lat, lng, radius))
    if since is not None:
        query += " AND created_at >= ?"
        params.append(since)
    query += " ORDER BY created_at DESC, id DESC"
    if limit is not None:
        query += " LIMIT ?"
        params.append(limit)
    with get_conn() as conn:
        rows = conn.execute(query, params).fetchall()
    return [dict(r) for r in rows]
