"""JSON document tables, their change log, and the SQL change feed."""

from __future__ import annotations

from .errors import UnknownTableError
from .feed import SqlChangeFeed
from .selectors import ById, Selector, StaleGeneration
from .services import DocumentStore, merge_patch
from .storage import (
    DOCUMENT_MODELS,
    ChangeLogEntry,
    ChangeLogHead,
    DomainDocument,
    ProjectDocument,
    UserAuthDocument,
    UserDocument,
    create_document_engine,
    init_document_storage,
)
from .summary import WriteSummary, ensure_clean

__all__ = [
    "DOCUMENT_MODELS",
    "ById",
    "ChangeLogEntry",
    "ChangeLogHead",
    "DocumentStore",
    "DomainDocument",
    "ProjectDocument",
    "Selector",
    "SqlChangeFeed",
    "StaleGeneration",
    "UnknownTableError",
    "UserAuthDocument",
    "UserDocument",
    "WriteSummary",
    "create_document_engine",
    "ensure_clean",
    "init_document_storage",
    "merge_patch",
]
