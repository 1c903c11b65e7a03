# ==============================================
# cqlmigrate: Cassandra table-to-table migration
# ==============================================
#
# Package Structure (3 Topics + Orchestrator):
#
# cqlmigrate/
# ├── schema/           # Topic 1: Column descriptors, introspection, compliance
# ├── serialization/    # Topic 2: Rows <-> flat-file records
# ├── storage/          # Topic 3: Cluster connection, throttled bulk inserts, retries
# ├── config.py         # Configuration management
# ├── errors.py         # Error taxonomy
# ├── migration.py      # Phase orchestrator (Extract / Insert / EndToEnd)
# └── cli.py            # Command line entry point
#
# ==============================================

__version__ = "0.1.0"
