"""Database adapters -- one interface over three backend families.

Each adapter owns a connection pool for one ``ConnectionSettings`` value and
maps the session's vocabulary (acquire, begin, execute, commit, release)
onto its driver.  Optional drivers are **import-guarded**: psycopg2 is only
required when a PostgreSQL pool is opened::

    pip install rowspine[postgresql]   # psycopg2-binary

Architecture::

    DatabaseAdapter (base.py)        acquire/release/begin/commit/execute
        |-- SQLiteAdapter            stdlib sqlite3 (always available)
        |-- PostgreSQLAdapter        psycopg2 (optional)
        |-- SQLAlchemyAdapter        any SQLAlchemy engine URL

    AdapterRegistry (registry.py)    backend name -> adapter class

Guardrails:
    ❌ ``cursor.execute("SELECT * FROM t WHERE id=" + user_input)``
    ✅ ``sess.query("SELECT * FROM t WHERE id = ?", user_input)``
    ❌ ``adapter = PostgreSQLAdapter(...)`` directly
    ✅ ``adapter = get_adapter(settings)``
"""

from .base import ConnectionPool, DatabaseAdapter
from .postgresql import PostgreSQLAdapter
from .registry import AdapterRegistry, adapter_registry, get_adapter
from .sqlalchemy import SQLAlchemyAdapter, create_rowspine_engine
from .sqlite import SQLiteAdapter

__all__ = [
    "AdapterRegistry",
    "ConnectionPool",
    "DatabaseAdapter",
    "PostgreSQLAdapter",
    "SQLAlchemyAdapter",
    "SQLiteAdapter",
    "adapter_registry",
    "create_rowspine_engine",
    "get_adapter",
]
