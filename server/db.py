from contextlib import contextmanager

import psycopg2.pool

from server.config import Settings


def create_pool(settings: Settings):
    kwargs = {"sslmode": "require"} if settings.production else {}
    return psycopg2.pool.ThreadedConnectionPool(
        settings.db_pool_min, settings.db_pool_max, settings.database_url, **kwargs
    )


@contextmanager
def pooled_connection(pool):
    """Check a connection out of the pool; the pool rolls back any open transaction on return."""
    conn = pool.getconn()
    try:
        yield conn
    finally:
        pool.putconn(conn)
