"""Database package for the Ignis CRM local store."""
from db.connection import configure, dispose_engine, get_db, get_engine, init_db

__all__ = ["configure", "get_engine", "get_db", "init_db", "dispose_engine"]
