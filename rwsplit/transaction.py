"""
事务控制：始终在主库连接上进行，不支持嵌套和保存点。
重复 begin、或没有 begin 就 commit/rollback 不做拦截，交给底层连接处理。
"""
import logging

from rwsplit.connection import ConnectionKind, ConnectionManager

logger = logging.getLogger(__name__)


class TransactionController:
    def __init__(self, manager: ConnectionManager):
        self.manager = manager
        self.in_transaction = False

    def begin(self) -> None:
        conn = self.manager.connect(ConnectionKind.PRIMARY)
        conn.autocommit(False)
        self.in_transaction = True
        logger.debug("BEGIN on server #%d", conn.index)

    def commit(self) -> None:
        conn = self.manager.connect(ConnectionKind.PRIMARY)
        conn.commit()
        conn.autocommit(True)
        self.in_transaction = False
        logger.debug("COMMIT on server #%d", conn.index)

    def rollback(self) -> None:
        conn = self.manager.connect(ConnectionKind.PRIMARY)
        conn.rollback()
        conn.autocommit(True)
        self.in_transaction = False
        logger.debug("ROLLBACK on server #%d", conn.index)
