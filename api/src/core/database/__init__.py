"""Database connection module."""

from src.core.database.async_cassandra import (
    SCHEMA,
    get_async_cassandra_session,
    init_async_cassandra,
    keyspace_cql,
    shutdown_async_cassandra,
)


__all__ = [
    "SCHEMA",
    "get_async_cassandra_session",
    "init_async_cassandra",
    "keyspace_cql",
    "shutdown_async_cassandra",
]
