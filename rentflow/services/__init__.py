"""Domain services for billing, payment intake and landlord payouts."""

from rentflow.services.db import dispose_engine, get_db, get_session_factory, init_engine

__all__ = [
    "init_engine",
    "dispose_engine",
    "get_session_factory",
    "get_db",
]
