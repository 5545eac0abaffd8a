"""Database package for the auto-answer pipeline."""
from db.connection import (
    create_engine_for,
    dispose_engine,
    get_engine,
    get_session_factory,
    make_session_factory,
    session_scope,
)

__all__ = [
    "create_engine_for",
    "make_session_factory",
    "session_scope",
    "get_engine",
    "get_session_factory",
    "dispose_engine",
]
