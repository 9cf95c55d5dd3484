"""Async Cassandra database connection using cassandra-asyncio-driver.

The cassandra-asyncio-driver extends the standard cassandra-driver with a
``session.aexecute()`` coroutine; every service awaits it for queries.
"""

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from coursehub.config.settings import get_settings
from coursehub.courses.models import COURSES_TABLES_CQL
from coursehub.progress.models import PROGRESS_TABLES_CQL
from coursehub.purchases.models import PURCHASES_TABLES_CQL
from coursehub.users.models import USERS_TABLES_CQL


logger = structlog.get_logger(__name__)

# Module name -> table DDL, created in this order on startup
SCHEMA_CQL: dict[str, list[str]] = {
    "users": USERS_TABLES_CQL,
    "courses": COURSES_TABLES_CQL,
    "progress": PROGRESS_TABLES_CQL,
    "purchases": PURCHASES_TABLES_CQL,
}


class AsyncCassandraConnection:
    """Async Cassandra connection manager (cluster + session lifecycle)."""

    _cluster: Cluster | None = None
    _session = None

    @classmethod
    def connect(cls):
        """Establish connection to the Cassandra cluster.

        Connecting is synchronous; queries on the returned session are not.

        Raises:
            ConnectionError: If connection fails
        """
        if cls._session is not None:
            return cls._session

        settings = get_settings()

        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        cls._cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
            connect_timeout=settings.cassandra_connect_timeout,
        )

        try:
            cls._session = cls._cluster.connect()
            logger.info(
                "cassandra_connected",
                hosts=settings.cassandra_hosts,
                port=settings.cassandra_port,
            )
        except Exception as e:
            logger.error("cassandra_connection_failed", error=str(e))
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        return cls._session

    @classmethod
    def disconnect(cls) -> None:
        """Close connection to Cassandra."""
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None

        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.info("cassandra_disconnected")

    @classmethod
    def is_connected(cls) -> bool:
        """Check if connection is active."""
        return cls._session is not None and not cls._session.is_shutdown


async def init_keyspace(session, keyspace: str) -> None:
    """Create keyspace if it does not exist."""
    settings = get_settings()

    if settings.is_production:
        replication = "'class': 'NetworkTopologyStrategy', 'datacenter1': 3"
    else:
        replication = "'class': 'SimpleStrategy', 'replication_factor': 1"

    await session.aexecute(f"""
        CREATE KEYSPACE IF NOT EXISTS {keyspace}
        WITH replication = {{{replication}}}
        AND durable_writes = true
    """)
    logger.info("keyspace_created", keyspace=keyspace)


async def init_tables(session, keyspace: str) -> None:
    """Create every module's tables."""
    for module, statements in SCHEMA_CQL.items():
        for cql_template in statements:
            await session.aexecute(cql_template.format(keyspace=keyspace))
        logger.info("tables_created", module=module, keyspace=keyspace)


async def init_async_cassandra():
    """Connect, then create keyspace and tables.

    Returns:
        Configured Cassandra session with aexecute() support
    """
    settings = get_settings()

    session = AsyncCassandraConnection.connect()
    await init_keyspace(session, settings.cassandra_keyspace)
    session.set_keyspace(settings.cassandra_keyspace)
    await init_tables(session, settings.cassandra_keyspace)

    logger.info("cassandra_initialized", keyspace=settings.cassandra_keyspace)
    return session


async def shutdown_async_cassandra() -> None:
    """Shutdown async Cassandra connection."""
    AsyncCassandraConnection.disconnect()
