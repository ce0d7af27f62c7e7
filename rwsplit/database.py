"""
读写分离的数据库句柄：写操作走主库，读操作走从库，发生写操作后读也固定走主库。
用 with 语句获取，退出时关闭所有连接。
"""
import logging
import random
from contextlib import contextmanager
from typing import Iterator, Optional

from rwsplit.config import ServerConfig
from rwsplit.connection import ConnectionKind, ConnectionManager, Connector, ServerConnection, parse_kind
from rwsplit.errors import DatabaseError
from rwsplit.executor import QueryExecutor
from rwsplit.transaction import TransactionController

logger = logging.getLogger(__name__)


class Database(QueryExecutor):
    def __init__(
        self,
        config: ServerConfig,
        name: str = "default",
        rng: Optional[random.Random] = None,
        connector: Optional[Connector] = None,
    ):
        manager = ConnectionManager(config.servers, rng=rng, connector=connector)
        super().__init__(manager, config.stick_to_primary_after_write)
        self.name = name
        self.transactions = TransactionController(manager)

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<Database {self.name!r} servers={len(self.manager.servers)}>"

    def connect(self, kind=ConnectionKind.REPLICA) -> ServerConnection:
        return self.manager.connect(kind)

    def close(self, kind=ConnectionKind.BOTH) -> bool:
        """关闭指定连接；未打开或已关闭的连接直接返回 True。"""
        if parse_kind(kind) is ConnectionKind.BOTH:
            self.free()
            self.pinned_to_primary = False
        return self.manager.close(kind)

    def begin(self) -> None:
        self.transactions.begin()

    def commit(self) -> None:
        self.transactions.commit()

    def rollback(self) -> None:
        self.transactions.rollback()

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """正常退出时提交，抛出异常时回滚。"""
        self.begin()
        try:
            yield self
        except BaseException:
            try:
                self.rollback()
            except DatabaseError:
                logger.exception("Rollback failed, re-raising the original error")
            raise
        else:
            self.commit()

    def stat(self, kind=ConnectionKind.REPLICA) -> Optional[str]:
        conn = self.manager.get(kind)
        if conn is None:
            return None
        return conn.stat()

    def server_version(self, kind=ConnectionKind.REPLICA) -> Optional[int]:
        conn = self.manager.get(kind)
        if conn is None:
            return None
        return conn.server_version

