"""Cassandra session for the progress and assessment stores.

The session comes from cassandra-asyncio-driver, which adds ``aexecute()``
to the regular driver session. Connecting is synchronous; every query the
repositories run afterwards is awaited.

Schema creation is idempotent (``IF NOT EXISTS``) and runs at startup for
each store in ``SCHEMA``.
"""

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from src.assessment.models import ASSESSMENT_TABLES_CQL
from src.catalog.models import CATALOG_TABLES_CQL
from src.config.settings import Settings, get_settings
from src.progress.models import PROGRESS_TABLES_CQL


logger = structlog.get_logger(__name__)


# Stores in creation order
SCHEMA: tuple[tuple[str, list[str]], ...] = (
    ("catalog", CATALOG_TABLES_CQL),
    ("assessment", ASSESSMENT_TABLES_CQL),
    ("progress", PROGRESS_TABLES_CQL),
)


class CassandraHolder:
    """Process-wide cluster and session."""

    cluster: Cluster | None = None
    session = None


def build_cluster(settings: Settings) -> Cluster:
    """Cluster configured from settings, routed to the local datacenter."""
    auth_provider = None
    if settings.cassandra_username and settings.cassandra_password:
        auth_provider = PlainTextAuthProvider(
            username=settings.cassandra_username,
            password=settings.cassandra_password,
        )

    return Cluster(
        contact_points=settings.cassandra_hosts,
        port=settings.cassandra_port,
        auth_provider=auth_provider,
        protocol_version=settings.cassandra_protocol_version,
        load_balancing_policy=TokenAwarePolicy(
            DCAwareRoundRobinPolicy(local_dc=settings.cassandra_datacenter)
        ),
        connect_timeout=settings.cassandra_connect_timeout,
    )


def get_async_cassandra_session():
    """Connected session with ``aexecute()``; connects on first use."""
    if CassandraHolder.session is not None:
        return CassandraHolder.session

    settings = get_settings()
    cluster = build_cluster(settings)
    try:
        session = cluster.connect()
    except Exception as e:
        logger.error(
            "cassandra_connection_failed",
            hosts=settings.cassandra_hosts,
            error=str(e),
        )
        cluster.shutdown()
        raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

    session.default_timeout = settings.cassandra_request_timeout
    CassandraHolder.cluster = cluster
    CassandraHolder.session = session
    logger.info(
        "cassandra_connected",
        hosts=settings.cassandra_hosts,
        port=settings.cassandra_port,
        datacenter=settings.cassandra_datacenter,
    )
    return session


def keyspace_cql(settings: Settings) -> str:
    """CREATE KEYSPACE statement for the configured environment."""
    if settings.is_production:
        replication = (
            f"'class': 'NetworkTopologyStrategy', '{settings.cassandra_datacenter}': 3"
        )
    else:
        replication = (
            "'class': 'SimpleStrategy', "
            f"'replication_factor': {settings.cassandra_replication_factor}"
        )
    return (
        f"CREATE KEYSPACE IF NOT EXISTS {settings.cassandra_keyspace} "
        f"WITH replication = {{{replication}}} AND durable_writes = true"
    )


async def init_async_cassandra():
    """Connect, then create the keyspace and every store's tables.

    Returns:
        Session bound to the configured keyspace
    """
    settings = get_settings()
    keyspace = settings.cassandra_keyspace
    session = get_async_cassandra_session()

    await session.aexecute(keyspace_cql(settings))
    session.set_keyspace(keyspace)

    for store, statements in SCHEMA:
        for statement in statements:
            await session.aexecute(statement.format(keyspace=keyspace))
        logger.debug("cassandra_tables_ready", store=store, tables=len(statements))

    logger.info("cassandra_schema_ready", keyspace=keyspace)
    return session


async def shutdown_async_cassandra() -> None:
    """Close the session and cluster."""
    if CassandraHolder.session is not None:
        CassandraHolder.session.shutdown()
        CassandraHolder.session = None
    if CassandraHolder.cluster is not None:
        CassandraHolder.cluster.shutdown()
        CassandraHolder.cluster = None
    logger.info("cassandra_closed")
