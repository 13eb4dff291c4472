"""DB package exports."""

from .base import (
    NAMING_CONVENTION,
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
    enum_values,
    metadata,
    utc_now,
)
from .database import (
    Database,
    DatabaseConfig,
    db,
    get_db_session,
    session_scope,
)
from .types import UTCDateTime, UUIDType

__all__ = [
    "Base",
    "metadata",
    "NAMING_CONVENTION",
    "enum_values",
    "utc_now",
    "UUIDPrimaryKeyMixin",
    "TimestampMixin",
    "UUIDType",
    "UTCDateTime",
    "Database",
    "DatabaseConfig",
    "db",
    "session_scope",
    "get_db_session",
]
