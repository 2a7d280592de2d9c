from .sql import Base, AsyncSessionLocal, init_db, close_db, check_db_connection

__all__ = [
    "Base",
    "AsyncSessionLocal",
    "init_db",
    "close_db",
    "check_db_connection",
]
