"""Record store collaborators.

The vault layer only needs create/read/update/delete/list-with-filter over
named collections; any backend implementing :class:`RecordStore` works.
"""
from .base import RecordStore, Record
from .memory import MemoryRecordStore

__all__ = [
    "RecordStore",
    "Record",
    "MemoryRecordStore",
]
