"""Domain model for deleted file/folder trees.

This package contains non-UI tree primitives:
- file/folder record datatypes with nested children
- the organizer that folds flat discovery output into a forest
- lookup and traversal helpers over the forest
"""

from __future__ import annotations

from .types import (
    EPOCH_ZERO_NS,
    DeletedRecord,
    FileRecord,
    FolderRecord,
    find_record,
    iter_file_records,
    iter_records,
)
from .organize import ancestor_dirs, organize_records, sort_records

__all__ = [
    "EPOCH_ZERO_NS",
    "DeletedRecord",
    "FileRecord",
    "FolderRecord",
    "find_record",
    "iter_file_records",
    "iter_records",
    "ancestor_dirs",
    "organize_records",
    "sort_records",
]
