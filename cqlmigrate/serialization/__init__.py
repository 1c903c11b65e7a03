# ==============================================
# TOPIC 2: SERIALIZATION
# ==============================================
#
# Rows to flat-file lines and back.
#
# Modules:
# --------
# - cql_values.py           → Text forms of opaque values (collections as JSON)
# - row_extractor.py        → Source rows → header + one quoted line per row
# - record_deserializer.py  → Flat-file records → values typed by target schema
#
# ==============================================

from .cql_values import CqlType, epoch_millis, from_text, parse_cql_type, to_text
from .row_extractor import RowExtractor
from .record_deserializer import RecordDeserializer, FlatFileReader

__all__ = [
    "CqlType",
    "epoch_millis",
    "from_text",
    "parse_cql_type",
    "to_text",
    "RowExtractor",
    "RecordDeserializer",
    "FlatFileReader",
]
