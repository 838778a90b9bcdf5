"""Attempt/session store backed by SQLAlchemy."""

from certprep.db.database import (
    create_engine_from_settings,
    get_session_factory,
    init_db,
    make_session_factory,
    session_scope,
)
from certprep.db.stores import (
    AttemptLog,
    ProgressionStore,
    ReviewScheduleStore,
    StoreConfig,
    TestResultStore,
)

__all__ = [
    "create_engine_from_settings",
    "get_session_factory",
    "init_db",
    "make_session_factory",
    "session_scope",
    "AttemptLog",
    "TestResultStore",
    "ReviewScheduleStore",
    "ProgressionStore",
    "StoreConfig",
]
