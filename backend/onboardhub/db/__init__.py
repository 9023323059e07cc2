"""Database package."""

from onboardhub.db.base import Base, BaseModel
from onboardhub.db.session import async_session_factory, get_db_session

__all__ = ["Base", "BaseModel", "async_session_factory", "get_db_session"]
