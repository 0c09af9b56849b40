from podium.db.base import Base
from podium.db.session import async_session_factory, engine

__all__ = ["Base", "engine", "async_session_factory"]
