# ==============================================
# TOPIC 3: STORAGE (Cassandra)
# ==============================================
#
# This package handles all cluster operations:
# connecting, preparing and binding inserts, and writing
# them under backpressure with a bounded retry policy.
#
# Modules:
# --------
# - cluster_client.py  → Cluster/session lifecycle and the query interface
# - binding.py         → INSERT text, prepared statement, value binding
# - throttle.py        → In-flight watermark gates
# - retry_policy.py    → What to do when a write fails
# - bulk_inserter.py   → Batched asynchronous writes with a per-batch barrier,
#                        retries resubmitted by one scheduler thread
#
# ==============================================

from .cluster_client import ClusterConnection, consistency_level
from .binding import PreparedInsertStatement, build_insert_query, interpret_opaque
from .throttle import InFlightThrottle, PoolStateThrottle
from .retry_policy import WriteRetryPolicy, RetryDecision
from .bulk_inserter import BulkInserter, InsertReport, BatchResult, RetryScheduler

__all__ = [
    "ClusterConnection",
    "consistency_level",
    "PreparedInsertStatement",
    "build_insert_query",
    "interpret_opaque",
    "InFlightThrottle",
    "PoolStateThrottle",
    "WriteRetryPolicy",
    "RetryDecision",
    "BulkInserter",
    "InsertReport",
    "BatchResult",
    "RetryScheduler",
]
