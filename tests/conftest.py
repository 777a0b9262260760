from __future__ import annotations

import pytest

from server.app import create_app
from server.config import Settings


class FakeCursor:
    """Minimal psycopg2 cursor: records statements, serves queued results on fetch."""

    def __init__(self, conn):
        self.conn = conn
        self.rowcount = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.conn.executed.append((sql, params))
        if self.conn.error is not None:
            raise self.conn.error
        self.rowcount = self.conn.rowcount

    def fetchone(self):
        return self.conn.results.pop(0) if self.conn.results else None

    def fetchall(self):
        return self.conn.results.pop(0) if self.conn.results else []


class FakeConnection:
    def __init__(self, results=None, error=None, rowcount=0):
        self.results = list(results or [])
        self.error = error
        self.rowcount = rowcount
        self.executed = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self, cursor_factory=None):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


class FakePool:
    def __init__(self, conn):
        self.conn = conn
        self.returned = 0

    def getconn(self):
        return self.conn

    def putconn(self, conn):
        self.returned += 1


def make_row(**overrides):
    row = {
        "id": 1,
        "place_id": "ChIJ123",
        "name": "Test Cafe",
        "cuisine": "Cafe",
        "neighbourhood": "Tanjong Pagar",
        "rating": 4.5,
        "review_count": 100,
        "price": "$$",
        "photos": '[{"name": "places/ChIJ123/photos/abc"}]',
        "latitude": 1.28,
        "longitude": 103.85,
        "is_halal": False,
        "is_vegetarian": False,
    }
    row.update(overrides)
    return row


@pytest.fixture
def settings():
    return Settings(
        google_maps_api_key="test-key",
        allowed_origins=("http://localhost:3000", "https://makan.example.com"),
    )


@pytest.fixture
def conn():
    return FakeConnection()


@pytest.fixture
def pool(conn):
    return FakePool(conn)


@pytest.fixture
def client(settings, pool):
    app = create_app(settings, pool=pool)
    app.config["TESTING"] = True
    return app.test_client()
