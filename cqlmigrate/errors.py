"""
Error hierarchy for cqlmigrate.

Every failure the core reports is a MigrationError. Driver exceptions are
translated into these classes at the storage seam so the phase runners only
ever deal with one taxonomy.
"""

from typing import Iterable, List, Optional


class MigrationError(Exception):
    """Base class for all migration failures"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigError(MigrationError):
    """Raised when configuration is missing or misspecified"""


class ConnectivityError(MigrationError):
    """Raised when a cluster cannot be built or a session is unusable"""


class SchemaError(MigrationError):
    """Raised when source and target schemas are not migration-compatible"""
    def __init__(self, message: str, mismatches: int = 0, details: dict = None):
        details = dict(details or {})
        details["mismatches"] = mismatches
        super().__init__(message, details)
        self.mismatches = mismatches


class ParseError(MigrationError):
    """Raised when a flat-file field cannot be parsed into its column type"""
    def __init__(self, message: str, line: int = None, column: str = None, value: str = None):
        super().__init__(message, {"line": line, "column": column, "value": value})
        self.line = line
        self.column = column
        self.value = value


class WriteTimeoutError(MigrationError):
    """Raised when a write keeps timing out after the retry limit is reached"""
    def __init__(self, message: str, attempts: int = 0, cause: Optional[BaseException] = None):
        super().__init__(message, {"attempts": attempts})
        self.attempts = attempts
        self.__cause__ = cause


class UnhandledTimeoutError(MigrationError):
    """Raised for read-timeout / unavailable / client timeout failures (fatal)"""
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.__cause__ = cause


class AggregateBatchError(MigrationError):
    """Collects every failure of one insertion batch"""
    def __init__(self, errors: Iterable[BaseException], batch_number: int = None):
        self.errors: List[BaseException] = list(errors)
        super().__init__(
            f"{len(self.errors)} write(s) failed in batch {batch_number}",
            {"batch": batch_number, "failures": len(self.errors)}
        )
        self.batch_number = batch_number

    def flatten(self) -> List[BaseException]:
        """Return the leaf errors, unwrapping nested aggregates."""
        flat: List[BaseException] = []
        for error in self.errors:
            if isinstance(error, AggregateBatchError):
                flat.extend(error.flatten())
            else:
                flat.append(error)
        return flat

    def is_fatal(self) -> bool:
        return any(isinstance(e, UnhandledTimeoutError) for e in self.flatten())
