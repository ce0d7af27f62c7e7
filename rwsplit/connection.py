"""
连接管理：最多持有一个主库连接和一个从库连接。
写操作固定使用配置中的第 0 台服务器；读操作从 1..N-1 中随机选一台从库。
只有一台服务器时，主从共用同一个连接，不会对同一台服务器打开两个 socket。
"""
import logging
import random
from enum import Enum
from typing import Callable, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from rwsplit.config import ServerDescriptor
from rwsplit.errors import DatabaseConnectionError, QueryError, native_error
from rwsplit.results import ResultSet

logger = logging.getLogger(__name__)

_STAT_FIELDS = (
    ("Uptime", "Uptime"),
    ("Threads", "Threads_connected"),
    ("Questions", "Questions"),
    ("Slow queries", "Slow_queries"),
    ("Opens", "Opened_tables"),
    ("Flush tables", "Flush_commands"),
    ("Open tables", "Open_tables"),
)


class ConnectionKind(str, Enum):
    PRIMARY = "write"
    REPLICA = "read"
    BOTH = "both"


def parse_kind(kind) -> ConnectionKind:
    try:
        return ConnectionKind(kind)
    except ValueError:
        raise DatabaseConnectionError("Invalid connection type selected") from None


class ServerConnection:
    """
    对单台服务器的一个连接，封装 SQLAlchemy Connection。
    自动提交模式下每条语句执行后立即 commit；begin() 关闭自动提交，直到 commit/rollback。
    """

    def __init__(self, index: int, descriptor: ServerDescriptor, engine: Engine, connection: Connection):
        self.index = index
        self.descriptor = descriptor
        self.engine = engine
        self._conn = connection
        self._autocommit = True
        self.insert_id = 0
        self.affected_rows = 0

    @classmethod
    def open(cls, index: int, descriptor: ServerDescriptor) -> "ServerConnection":
        logger.info("Connecting to server #%d (%s)", index, descriptor.label())
        try:
            # 每个连接独占一个 engine，关闭连接即关闭 socket
            engine = create_engine(descriptor.sqlalchemy_url(), poolclass=NullPool)
            # 最终 SQL 中的 % 原样交给驱动，不做 pyformat 处理
            connection = engine.connect().execution_options(no_parameters=True)
        except Exception as exc:
            code, message = native_error(exc)
            raise DatabaseConnectionError(f"No database connection: {message}", code) from exc
        return cls(index, descriptor, engine, connection)

    @property
    def closed(self) -> bool:
        return self._conn.closed

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def escape_string(self, value: str) -> str:
        dbapi_conn = self._conn.connection.dbapi_connection
        escape = getattr(dbapi_conn, "escape_string", None)
        if escape is not None:
            return escape(value)
        return value.replace("'", "''")

    def query(self, sql: str) -> ResultSet:
        try:
            result = self._conn.exec_driver_sql(sql)
            returns_rows = result.returns_rows
            if returns_rows:
                columns = tuple(result.keys())
                rows = [tuple(row) for row in result.fetchall()]
                affected = len(rows)
            else:
                columns, rows = (), []
                affected = result.rowcount
                self.insert_id = result.lastrowid or 0
            if self._autocommit:
                self._conn.commit()
        except SQLAlchemyError as exc:
            if self._autocommit:
                self._conn.rollback()
            code, message = native_error(exc)
            raise QueryError(f"{message} [ {sql} ]", code, sql) from exc
        self.affected_rows = affected
        return ResultSet(columns, rows, affected, returns_rows=returns_rows)

    def autocommit(self, enabled: bool) -> None:
        self._autocommit = enabled

    def commit(self) -> None:
        try:
            self._conn.commit()
        except SQLAlchemyError as exc:
            code, message = native_error(exc)
            raise QueryError(message, code, "COMMIT") from exc

    def rollback(self) -> None:
        try:
            self._conn.rollback()
        except SQLAlchemyError as exc:
            code, message = native_error(exc)
            raise QueryError(message, code, "ROLLBACK") from exc

    def stat(self) -> Optional[str]:
        """MySQL 服务器状态字符串；其他方言没有对应命令，返回 None。"""
        if self.dialect != "mysql":
            return None
        names = ", ".join(f"'{name}'" for _, name in _STAT_FIELDS)
        sql = f"SHOW GLOBAL STATUS WHERE Variable_name IN ({names})"
        try:
            status = dict(self._conn.exec_driver_sql(sql).fetchall())
            if self._autocommit:
                self._conn.commit()
        except SQLAlchemyError as exc:
            code, message = native_error(exc)
            raise QueryError(f"{message} [ {sql} ]", code, sql) from exc
        parts = [f"{label}: {status.get(name, 0)}" for label, name in _STAT_FIELDS]
        uptime = int(status.get("Uptime", 0) or 0)
        qps = int(status.get("Questions", 0) or 0) / uptime if uptime else 0.0
        parts.append(f"Queries per second avg: {qps:.3f}")
        return "  ".join(parts)

    @property
    def server_version(self) -> int:
        """主版本 * 10000 + 次版本 * 100 + 修订号，例如 8.0.33 为 80033。"""
        info = self.engine.dialect.server_version_info or ()
        numbers = [n for n in info if isinstance(n, int)][:3]
        numbers += [0] * (3 - len(numbers))
        return numbers[0] * 10000 + numbers[1] * 100 + numbers[2]

    def close(self) -> None:
        if not self._conn.closed:
            self._conn.close()
            logger.info("Closed connection to server #%d (%s)", self.index, self.descriptor.label())
        self.engine.dispose()


Connector = Callable[[int, ServerDescriptor], ServerConnection]


class ConnectionManager:
    def __init__(
        self,
        servers: List[ServerDescriptor],
        rng: Optional[random.Random] = None,
        connector: Optional[Connector] = None,
    ):
        self.servers = list(servers)
        self.rng = rng or random.Random()
        self.connector = connector or ServerConnection.open
        self.primary: Optional[ServerConnection] = None
        self.replica: Optional[ServerConnection] = None

    def pick_replica_index(self) -> int:
        # 第 0 台是主库，不参与读库选择
        if len(self.servers) == 1:
            return 0
        return self.rng.randint(1, len(self.servers) - 1)

    def connect(self, kind=ConnectionKind.PRIMARY) -> ServerConnection:
        """返回指定类型的连接，尚未打开时先建立。"""
        kind = parse_kind(kind)
        if kind is ConnectionKind.BOTH:
            raise DatabaseConnectionError("Invalid connection type selected")

        held = self.primary if kind is ConnectionKind.PRIMARY else self.replica
        if held is not None:
            return held
        if not self.servers:
            raise DatabaseConnectionError("No database servers configured")

        index = 0 if kind is ConnectionKind.PRIMARY else self.pick_replica_index()
        conn = self.connector(index, self.servers[index])
        if len(self.servers) == 1:
            self.primary = self.replica = conn
        elif kind is ConnectionKind.PRIMARY:
            self.primary = conn
        else:
            self.replica = conn
        return conn

    def get(self, kind) -> Optional[ServerConnection]:
        """已打开的连接，不会触发连接；类型无效时返回 None。"""
        try:
            kind = ConnectionKind(kind)
        except ValueError:
            return None
        if kind is ConnectionKind.PRIMARY:
            return self.primary
        if kind is ConnectionKind.REPLICA:
            return self.replica
        return None

    def close(self, kind=ConnectionKind.BOTH) -> bool:
        kind = parse_kind(kind)
        targets = []
        if kind in (ConnectionKind.PRIMARY, ConnectionKind.BOTH) and self.primary is not None:
            targets.append(self.primary)
        if kind in (ConnectionKind.REPLICA, ConnectionKind.BOTH) and self.replica is not None:
            if self.replica not in targets:
                targets.append(self.replica)

        for conn in targets:
            conn.close()
            # 单服务器时主从是同一个连接，两个槽位一起清空
            if self.primary is conn:
                self.primary = None
            if self.replica is conn:
                self.replica = None
        return True
