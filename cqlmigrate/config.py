# ==============================================
# Configuration Management
# ==============================================
#
# PURPOSE:
#   Load and validate all configuration from environment
#   variables / .env file. Provides typed config objects
#   to all other modules. Nothing else in the package reads
#   the environment; the AppConfig is passed in read-only.
#
# CLASSES:
# --------
# - TaskToPerform (Enum)
#     EXTRACT | INSERT | END_TO_END
#
# - ClusterConfig (dataclass)
#     contact_points: list[str]        (default ["127.0.0.1"])
#     port: int                        (default 9042)
#     keyspace: str / table: str
#     username / password: str | None  (default None)
#     request_timeout_seconds: float | None
#
# - InsertConfig (dataclass)
#     batch_size: int                  (default 100000)
#     max_requests_per_connection: int (default 1024)
#     poll_interval_seconds: float     (default 0.01)
#     write_consistency: str           (default "LOCAL_ONE")
#     throttle_mode: str               (default "tracked"; or "pool")
#
# - RetryConfig (dataclass)
#     max_retries: int                 (default 10)
#     base_delay_seconds: float        (default 0.05)
#     backoff_multiplier: float        (default 2.0)
#     max_delay_seconds: float         (default 2.0)
#     unavailable_max_retries: int     (default 0)
#
# - FlatFileConfig (dataclass)
#     path: str                        (default "data/records.csv")
#     null_sentinel: str | None       (default None)
#     quote_all: bool                  (default False)
#     encoding: str                    (default "utf-8")
#     max_field_size: int              (default 2**31 - 1 characters)
#
# - AppConfig (dataclass)
#     task, source, target, insert, retry, flat_file,
#     fetch_size, log_level, log_file
#
# FUNCTIONS:
# ----------
# - load_config(env_file=None) -> AppConfig
#     Load .env using python-dotenv, construct a fresh AppConfig.
# - get_config() -> AppConfig
#     Returns the same singleton on repeated calls.
#
# USAGE:
# ------
#   from cqlmigrate.config import get_config
#   config = get_config()
#   print(config.source.contact_points)
#   print(config.insert.batch_size)
#
# ==============================================

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from cqlmigrate.errors import ConfigError


class TaskToPerform(Enum):
    """Which phase the process runs."""
    EXTRACT = "extract"
    INSERT = "insert"
    END_TO_END = "end_to_end"

    @classmethod
    def parse(cls, value: Optional[str]) -> "TaskToPerform":
        if not value:
            raise ConfigError("Config entry MIGRATION_TASK is either unspecified or misspecified.")
        key = value.strip().lower().replace("-", "_")
        if key == "endtoend":
            key = "end_to_end"
        for task in cls:
            if task.value == key:
                return task
        raise ConfigError(f"Config entry MIGRATION_TASK is either unspecified or misspecified: {value!r}")


@dataclass
class ClusterConfig:
    """Connection parameters and table coordinates for one cluster."""
    contact_points: List[str] = field(default_factory=lambda: ["127.0.0.1"])
    port: int = 9042
    keyspace: str = ""
    table: str = ""
    username: Optional[str] = None
    password: Optional[str] = None
    request_timeout_seconds: Optional[float] = None

    @property
    def qualified_table(self) -> str:
        return f"{self.keyspace}.{self.table}"


@dataclass
class InsertConfig:
    """Batching and backpressure settings for the insertion phase."""
    batch_size: int = 100_000
    max_requests_per_connection: int = 1024
    poll_interval_seconds: float = 0.01
    write_consistency: str = "LOCAL_ONE"
    throttle_mode: str = "tracked"


@dataclass
class RetryConfig:
    """Bounds for the write retry policy."""
    max_retries: int = 10
    base_delay_seconds: float = 0.05
    backoff_multiplier: float = 2.0
    max_delay_seconds: float = 2.0
    unavailable_max_retries: int = 0


@dataclass
class FlatFileConfig:
    """Location and encoding rules of the intermediate flat file."""
    path: str = "data/records.csv"
    null_sentinel: Optional[str] = None
    quote_all: bool = False
    encoding: str = "utf-8"
    max_field_size: int = 2**31 - 1


@dataclass
class AppConfig:
    """Main application configuration."""
    task: TaskToPerform
    source: ClusterConfig
    target: ClusterConfig
    insert: InsertConfig = field(default_factory=InsertConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    flat_file: FlatFileConfig = field(default_factory=FlatFileConfig)
    fetch_size: int = 5000
    log_level: str = "INFO"
    log_file: Optional[str] = None


# Singleton instance
_config_instance: Optional[AppConfig] = None


def _split_points(raw: str) -> List[str]:
    return [p.strip() for p in raw.split(",") if p.strip()]


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _get_optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "" or raw.strip().lower() == "none":
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"Config entry {name} must be a number, got {raw!r}")


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    try:
        return int(raw) if raw not in (None, "") else default
    except ValueError:
        raise ConfigError(f"Config entry {name} must be an integer, got {raw!r}")


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    try:
        return float(raw) if raw not in (None, "") else default
    except ValueError:
        raise ConfigError(f"Config entry {name} must be a number, got {raw!r}")


def _load_cluster(prefix: str) -> ClusterConfig:
    return ClusterConfig(
        contact_points=_split_points(os.getenv(f"{prefix}_CONTACT_POINTS", "127.0.0.1")),
        port=_get_int(f"{prefix}_PORT", 9042),
        keyspace=os.getenv(f"{prefix}_KEYSPACE", ""),
        table=os.getenv(f"{prefix}_TABLE", ""),
        username=os.getenv(f"{prefix}_USERNAME") or None,
        password=os.getenv(f"{prefix}_PASSWORD") or None,
        request_timeout_seconds=_get_optional_float(f"{prefix}_REQUEST_TIMEOUT_SECONDS"),
    )


def load_config(env_file: Optional[str] = None) -> AppConfig:
    """
    Build a fresh configuration from environment variables.

    Args:
        env_file: Optional path to a .env file. Defaults to the .env in
                  the project root. Variables already set in the process
                  environment win over the file.

    Returns:
        AppConfig: Application configuration

    Raises:
        ConfigError: If the task selector or a numeric entry is malformed.
    """
    env_path = Path(env_file) if env_file else Path(__file__).parent.parent / ".env"
    load_dotenv(dotenv_path=env_path)

    insert_config = InsertConfig(
        batch_size=_get_int("INSERT_BATCH_SIZE", 100_000),
        max_requests_per_connection=_get_int("MAX_REQUESTS_PER_CONNECTION", 1024),
        poll_interval_seconds=_get_float("THROTTLE_POLL_INTERVAL_SECONDS", 0.01),
        write_consistency=os.getenv("WRITE_CONSISTENCY", "LOCAL_ONE").upper(),
        throttle_mode=os.getenv("THROTTLE_MODE", "tracked").strip().lower(),
    )
    if insert_config.batch_size <= 0:
        raise ConfigError("INSERT_BATCH_SIZE must be positive")
    if insert_config.max_requests_per_connection < 2:
        raise ConfigError("MAX_REQUESTS_PER_CONNECTION must be at least 2")
    if insert_config.throttle_mode not in ("tracked", "pool"):
        raise ConfigError(f"THROTTLE_MODE must be 'tracked' or 'pool', got {insert_config.throttle_mode!r}")

    retry_config = RetryConfig(
        max_retries=_get_int("RETRY_MAX_RETRIES", 10),
        base_delay_seconds=_get_float("RETRY_BASE_DELAY_SECONDS", 0.05),
        backoff_multiplier=_get_float("RETRY_BACKOFF_MULTIPLIER", 2.0),
        max_delay_seconds=_get_float("RETRY_MAX_DELAY_SECONDS", 2.0),
        unavailable_max_retries=_get_int("RETRY_UNAVAILABLE_MAX_RETRIES", 0),
    )

    flat_file_config = FlatFileConfig(
        path=os.getenv("FLAT_FILE_PATH", "data/records.csv"),
        null_sentinel=os.getenv("FLAT_FILE_NULL_SENTINEL") or None,
        quote_all=_get_bool("FLAT_FILE_QUOTE_ALL", False),
        encoding=os.getenv("FLAT_FILE_ENCODING", "utf-8"),
        max_field_size=_get_int("FLAT_FILE_MAX_FIELD_SIZE", 2**31 - 1),
    )
    if flat_file_config.max_field_size <= 0:
        raise ConfigError("FLAT_FILE_MAX_FIELD_SIZE must be positive")

    return AppConfig(
        task=TaskToPerform.parse(os.getenv("MIGRATION_TASK", "extract")),
        source=_load_cluster("SOURCE"),
        target=_load_cluster("TARGET"),
        insert=insert_config,
        retry=retry_config,
        flat_file=flat_file_config,
        fetch_size=_get_int("SOURCE_FETCH_SIZE", 5000),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_file=os.getenv("LOG_FILE") or None,
    )


def get_config() -> AppConfig:
    """
    Load configuration from environment variables / .env file.
    Returns the same singleton instance on repeated calls.

    Returns:
        AppConfig: Application configuration
    """
    global _config_instance

    if _config_instance is not None:
        return _config_instance

    _config_instance = load_config()
    return _config_instance
