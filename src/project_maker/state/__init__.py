"""
State management for Project Maker.

Provides the database boundary and the stores that own feature and
project state.
"""

from .database import Database, PersistenceError
from .errors import (
    FeatureNotFoundError,
    InvalidTransitionError,
    ProjectNotFoundError,
    StoreError,
)
from .feature_store import FeatureStore
from .project_store import ProjectStore

__all__ = [
    "Database",
    "PersistenceError",
    "FeatureNotFoundError",
    "InvalidTransitionError",
    "ProjectNotFoundError",
    "StoreError",
    "FeatureStore",
    "ProjectStore",
]
