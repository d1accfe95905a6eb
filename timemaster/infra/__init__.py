"""Infrastructure layer - Configuration, database and persistence"""

from .db import Base, DatabaseEngine, get_engine, init_db

__all__ = ["Base", "DatabaseEngine", "get_engine", "init_db"]
