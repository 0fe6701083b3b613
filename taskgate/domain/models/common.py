"""Defines common Value Objects used across the data-access layer.

These objects represent simple values or concepts like record ids, owner ids
and the enumerations shared by the store, the wire shapes and the gateway.
"""

from enum import Enum
from typing import NewType

# === Identifiers ===

# Using NewType for semantic clarity, although they are strings at runtime.
TaskId = NewType("TaskId", str)
CategoryId = NewType("CategoryId", str)
FeedbackId = NewType("FeedbackId", str)
OwnerId = NewType("OwnerId", str)
StorageKey = NewType("StorageKey", str)   # Key in the key/value primitive

DEFAULT_OWNER = OwnerId("default")


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DueBucket(str, Enum):
    """Due-date projections supported by task queries."""
    TODAY = "today"
    THIS_WEEK = "this-week"
    OVERDUE = "overdue"


class SortKey(str, Enum):
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    DUE_DATE = "dueDate"
    PRIORITY = "priority"
    TITLE = "title"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class BulkAction(str, Enum):
    COMPLETE = "complete"
    DELETE = "delete"


class GatewayMode(str, Enum):
    """Which backend the gateway routes to."""
    MOCK = "mock"
    REAL = "real"


# Ranking used when sorting by priority (higher number = more urgent)
PRIORITY_RANK = {Priority.LOW: 0, Priority.MEDIUM: 1, Priority.HIGH: 2}

# === Field limits ===
TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
FEEDBACK_COMMENT_MAX_LENGTH = 1000
