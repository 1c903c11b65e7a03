# ==============================================
# ComplianceChecker
# ==============================================
#
# PURPOSE:
#   Decide whether rows of a source table can be written into a
#   target table: same number of columns and the same set of
#   (name, type) pairs. Column order does not matter here; the
#   end-to-end path prepares its insert in source order.
#
# RULES:
#   1. Column counts differ         -> non-compliant
#   2. name->type maps differ       -> non-compliant
#      (each name counted at most once per side)
#   3. otherwise                    -> compliant
#
#   The mismatch count is the number of distinct column names whose
#   type differs between the sides or that exist on one side only.
#
# ==============================================

import logging
from dataclasses import dataclass, field
from typing import List

from cqlmigrate.errors import SchemaError
from cqlmigrate.schema.types import TableSchema

logger = logging.getLogger(__name__)


@dataclass
class ComplianceResult:
    compliant: bool
    mismatches: int = 0
    mismatched_columns: List[str] = field(default_factory=list)
    reason: str = ""

    def raise_for_status(self) -> None:
        if not self.compliant:
            raise SchemaError(self.reason, mismatches=self.mismatches,
                              details={"columns": self.mismatched_columns})


class ComplianceChecker:
    """Stateless: schemas in, ComplianceResult out."""

    def check(self, source: TableSchema, target: TableSchema) -> ComplianceResult:
        source_types = source.type_map()
        target_types = target.type_map()
        mismatched = sorted(
            name for name in set(source_types) | set(target_types)
            if source_types.get(name) != target_types.get(name)
        )

        if len(source) != len(target):
            reason = (f"Tables from source and target have divergent number of columns "
                      f"({len(source)} vs {len(target)}).")
            logger.error(reason)
            return ComplianceResult(False, max(len(mismatched), 1), mismatched, reason)

        if source_types == target_types:
            logger.info("Tables are compliant with each other.")
            return ComplianceResult(True)

        reason = (f"Tables are not compliant with each other: {len(mismatched)} "
                  f"mismatch(es) among {len(source)} columns.")
        logger.error(reason)
        return ComplianceResult(False, len(mismatched), mismatched, reason)
