import json
import logging

import psycopg2
import psycopg2.extras

from scraper.config import SeedSettings

logger = logging.getLogger(__name__)

UPSERT_POLICIES = ("update", "ignore")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS eateries (
    id             SERIAL PRIMARY KEY,
    place_id       TEXT NOT NULL,
    name           TEXT NOT NULL,
    cuisine        TEXT,
    neighbourhood  TEXT,
    rating         REAL    DEFAULT 0,
    review_count   INTEGER DEFAULT 0 CHECK (review_count >= 0),
    price          TEXT CHECK (price IN ('$', '$$', '$$$', '$$$$', 'Free')),
    latitude       DOUBLE PRECISION,
    longitude      DOUBLE PRECISION,
    is_halal       BOOLEAN DEFAULT FALSE,
    is_vegetarian  BOOLEAN DEFAULT FALSE,
    photos         TEXT,
    updated_at     TIMESTAMPTZ DEFAULT NOW()
);
CREATE UNIQUE INDEX IF NOT EXISTS eateries_place_id_key ON eateries (place_id);

CREATE OR REPLACE FUNCTION haversine_km(
    lat1 DOUBLE PRECISION, lon1 DOUBLE PRECISION,
    lat2 DOUBLE PRECISION, lon2 DOUBLE PRECISION
) RETURNS DOUBLE PRECISION AS $$
    SELECT 6371 * 2 * ASIN(SQRT(LEAST(1.0,
        POWER(SIN(RADIANS(lat2 - lat1) / 2), 2)
        + COS(RADIANS(lat1)) * COS(RADIANS(lat2))
        * POWER(SIN(RADIANS(lon2 - lon1) / 2), 2)
    )))
$$ LANGUAGE SQL IMMUTABLE;
"""

_INSERT_SQL = """
    INSERT INTO eateries (
        place_id, name, cuisine, neighbourhood, rating, review_count,
        price, latitude, longitude, is_halal, is_vegetarian, photos, updated_at
    ) VALUES (
        %(place_id)s, %(name)s, %(cuisine)s, %(neighbourhood)s, %(rating)s, %(review_count)s,
        %(price)s, %(latitude)s, %(longitude)s, %(is_halal)s, %(is_vegetarian)s, %(photos)s, NOW()
    )
"""

_ON_CONFLICT = {
    # xmax = 0 only for a freshly inserted tuple
    "update": """
    ON CONFLICT (place_id) DO UPDATE SET
        name          = EXCLUDED.name,
        cuisine       = EXCLUDED.cuisine,
        neighbourhood = EXCLUDED.neighbourhood,
        rating        = EXCLUDED.rating,
        review_count  = EXCLUDED.review_count,
        price         = EXCLUDED.price,
        latitude      = EXCLUDED.latitude,
        longitude     = EXCLUDED.longitude,
        is_halal      = EXCLUDED.is_halal,
        is_vegetarian = EXCLUDED.is_vegetarian,
        photos        = EXCLUDED.photos,
        updated_at    = NOW()
    RETURNING (xmax = 0) AS inserted
    """,
    "ignore": """
    ON CONFLICT (place_id) DO NOTHING
    RETURNING TRUE AS inserted
    """,
}


def get_connection(settings: SeedSettings):
    kwargs = {"sslmode": "require"} if settings.production else {}
    return psycopg2.connect(settings.database_url, **kwargs)


def ensure_schema(conn):
    """Create the eateries table, its place_id index and haversine_km() if missing."""
    with conn.cursor() as cur:
        cur.execute(SCHEMA_SQL)
    conn.commit()


def check_connection(conn):
    with conn.cursor() as cur:
        cur.execute("SELECT 1")
        cur.fetchone()


def truncate_eateries(conn):
    with conn.cursor() as cur:
        cur.execute("TRUNCATE TABLE eateries RESTART IDENTITY")
    conn.commit()
    logger.info("eateries table truncated")


def upsert_eatery(conn, row: dict, policy: str = "update") -> str:
    """
    Write one eatery keyed by place_id.

    Returns "inserted" for a new row, "updated" when policy="update" hit an
    existing row, or "duplicate" when policy="ignore" left it untouched.
    """
    if policy not in UPSERT_POLICIES:
        raise ValueError(f"unknown upsert policy: {policy!r}")

    params = dict(row)
    params["photos"] = json.dumps(row.get("photos") or [])
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(_INSERT_SQL + _ON_CONFLICT[policy], params)
        result = cur.fetchone()
    conn.commit()

    if result is None:
        return "duplicate"
    return "inserted" if result["inserted"] else "updated"


def delete_eatery(conn, place_id: str) -> int:
    """Delete one eatery by place_id. Returns the number of rows removed."""
    with conn.cursor() as cur:
        cur.execute("DELETE FROM eateries WHERE place_id = %s", (place_id,))
        deleted = cur.rowcount
    conn.commit()
    return deleted


def mark_halal(conn, place_id: str) -> int:
    """Set is_halal on an existing row. Returns the number of rows changed."""
    with conn.cursor() as cur:
        cur.execute(
            "UPDATE eateries SET is_halal = TRUE, updated_at = NOW() "
            "WHERE place_id = %s AND is_halal = FALSE",
            (place_id,),
        )
        changed = cur.rowcount
    conn.commit()
    return changed
