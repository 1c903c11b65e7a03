# ==============================================
# ClusterConnection
# ==============================================
#
# PURPOSE:
#   Owns one Cassandra Cluster + Session and exposes the narrow
#   interface the core needs from a store:
#     - synchronous query (bounded schema read, paged row read)
#     - prepare(text) -> statement
#     - execute_async(request) -> pending handle (ResponseFuture)
#     - pool state: in-flight requests and the per-connection cap
#
# WHY THIS CLASS EXISTS:
#   There are no module-level cluster/session globals. The phase
#   runner builds one connection per cluster, passes it by
#   reference into every component and disposes it at the end.
#
# CLASS: ClusterConnection
# ------------------------
#   Stateful: holds the cluster and session.
#
#   Constructor:
#   ------------
#   - __init__(config: ClusterConfig, name="source", ...)
#       Store connection params. Don't connect yet.
#
#   Methods:
#   --------
#   - connect() / disconnect()
#   - execute(query, fetch_size=None) -> ResultSet
#   - prepare(query) -> PreparedStatement
#   - execute_async(request) -> ResponseFuture
#   - in_flight_requests() -> int
#   - max_requests_per_connection() -> int
#
#   Context Manager:
#   ----------------
#   - __enter__ / __exit__ for `with ClusterConnection(...) as conn:` usage.
#
# ==============================================

import logging
from typing import Any, Callable, Optional

from cassandra import ConsistencyLevel
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, Cluster, ExecutionProfile, NoHostAvailable
from cassandra.policies import FallthroughRetryPolicy
from cassandra.query import SimpleStatement

from cqlmigrate.config import ClusterConfig
from cqlmigrate.errors import ConfigError, ConnectivityError

logger = logging.getLogger(__name__)


def consistency_level(name: Optional[str]) -> Optional[int]:
    """"LOCAL_QUORUM" -> ConsistencyLevel.LOCAL_QUORUM. None stays None (driver default)."""
    if not name:
        return None
    try:
        return ConsistencyLevel.name_to_value[name.upper()]
    except KeyError:
        raise ConfigError(f"Unknown consistency level: {name!r}")


class ClusterConnection:
    def __init__(
        self,
        config: ClusterConfig,
        name: str = "source",
        consistency: Optional[str] = None,
        surface_timeouts: bool = False,
        max_requests_per_connection: int = 1024,
        cluster_factory: Callable[..., Any] = Cluster,
    ):
        self.config = config
        self.name = name
        self.consistency = consistency
        # Let write/read timeouts reach the application-level retry policy
        self.surface_timeouts = surface_timeouts
        self._max_requests = max_requests_per_connection
        self._cluster_factory = cluster_factory
        self.cluster = None
        self.session = None

    def _execution_profile(self) -> ExecutionProfile:
        kwargs = {"request_timeout": self.config.request_timeout_seconds}
        level = consistency_level(self.consistency)
        if level is not None:
            kwargs["consistency_level"] = level
        if self.surface_timeouts:
            kwargs["retry_policy"] = FallthroughRetryPolicy()
        return ExecutionProfile(**kwargs)

    def connect(self) -> None:
        if self.session is not None:
            return
        logger.info("Building %s cluster and connecting session...", self.name)
        auth_provider = None
        if self.config.username and self.config.password:
            auth_provider = PlainTextAuthProvider(
                username=self.config.username, password=self.config.password
            )
        try:
            self.cluster = self._cluster_factory(
                contact_points=self.config.contact_points,
                port=self.config.port,
                auth_provider=auth_provider,
                execution_profiles={EXEC_PROFILE_DEFAULT: self._execution_profile()},
            )
            self.session = self.cluster.connect()
        except Exception as e:
            self.cluster = None
            self.session = None
            raise ConnectivityError(
                f"Could not connect to {self.name} cluster "
                f"{self.config.contact_points}:{self.config.port}: {e}"
            ) from e
        logger.info("✓ Connected to %s cluster", self.name)

    def disconnect(self) -> None:
        if self.cluster is None:
            return
        logger.info("Disposing %s's cluster and session...", self.name)
        self.cluster.shutdown()
        self.cluster = None
        self.session = None

    def _require_session(self):
        if self.session is None or getattr(self.session, "is_shutdown", False):
            raise ConnectivityError(f"Not connected to {self.name} cluster")
        return self.session

    def execute(self, query: str, fetch_size: Optional[int] = None):
        """Run a synchronous query. With fetch_size the result pages lazily while iterated."""
        session = self._require_session()
        statement = SimpleStatement(query, fetch_size=fetch_size)
        try:
            return session.execute(statement)
        except NoHostAvailable as e:
            raise ConnectivityError(f"No {self.name} host available for query: {e}") from e

    def prepare(self, query: str):
        session = self._require_session()
        try:
            return session.prepare(query)
        except NoHostAvailable as e:
            raise ConnectivityError(f"No {self.name} host available to prepare statement: {e}") from e

    def execute_async(self, request):
        return self._require_session().execute_async(request)

    def in_flight_requests(self) -> int:
        """Sum of in-flight requests over every connected host's pool."""
        state = self._require_session().get_pool_state()
        total = 0
        for host_state in state.values():
            total += sum(host_state.get("in_flights", []) or [])
        return total

    def max_requests_per_connection(self) -> int:
        return self._max_requests

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
