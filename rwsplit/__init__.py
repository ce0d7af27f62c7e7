"""
读写分离数据库句柄：主库写、从库读，写后读粘滞主库。
"""
from rwsplit.config import ServerConfig, ServerDescriptor, configure_logging, load_config
from rwsplit.connection import ConnectionKind, ConnectionManager, ServerConnection
from rwsplit.database import Database
from rwsplit.errors import DatabaseConnectionError, DatabaseError, QueryError
from rwsplit.executor import QueryExecutor, is_write
from rwsplit.registry import DatabaseRegistry
from rwsplit.results import ResultSet
from rwsplit.transaction import TransactionController

__all__ = [
    "ConnectionKind",
    "ConnectionManager",
    "Database",
    "DatabaseConnectionError",
    "DatabaseError",
    "DatabaseRegistry",
    "QueryError",
    "QueryExecutor",
    "ResultSet",
    "ServerConfig",
    "ServerConnection",
    "ServerDescriptor",
    "TransactionController",
    "configure_logging",
    "is_write",
    "load_config",
]

__version__ = "1.0.0"
