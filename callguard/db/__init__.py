from callguard.db.models import Base, CallModel, CallOwnerModel
from callguard.db.session import async_session, engine, get_db, init_db

__all__ = [
    "Base",
    "CallModel",
    "CallOwnerModel",
    "async_session",
    "engine",
    "get_db",
    "init_db",
]
