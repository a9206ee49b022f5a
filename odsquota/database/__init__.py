"""
ODS Quota Database Layer

SQLAlchemy 2.0 async persistence for the refrigerant catalog, quota accounts
and import requests.
"""

from odsquota.database.connection import create_engine, create_session_factory, drop_db, init_db
from odsquota.database.store import SqlQuotaStore, SqlRefrigerantCatalog
from odsquota.database.tables import Base
from odsquota.database.transaction import TransactionManager

__all__ = [
    "Base",
    "create_engine",
    "create_session_factory",
    "init_db",
    "drop_db",
    "SqlQuotaStore",
    "SqlRefrigerantCatalog",
    "TransactionManager",
]
