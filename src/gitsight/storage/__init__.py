"""Persistent storage for extracted records."""

from .table_store import EXTRACTED_KINDS, TableStore

__all__ = ["EXTRACTED_KINDS", "TableStore"]
