"""File adapters: engine configuration and source record batches."""

from __future__ import annotations

from .loader import (
    SourceRecordBatch,
    dump_source_record,
    load_engine_config,
    load_source_records,
    parse_engine_config,
    parse_source_record,
    read_source_records,
)

__all__ = [
    "SourceRecordBatch",
    "dump_source_record",
    "load_engine_config",
    "load_source_records",
    "parse_engine_config",
    "parse_source_record",
    "read_source_records",
]
