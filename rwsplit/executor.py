"""
语句执行：判断读写、选择连接、转义并替换参数、发送语句。
execute() 失败时抛出 QueryError；select/insert/update/delete 等便捷方法失败时返回 False。
"""
import logging
from typing import Any, Callable, Dict, Optional, Sequence

from rwsplit.connection import ConnectionKind, ConnectionManager, ServerConnection
from rwsplit.errors import DatabaseConnectionError, QueryError
from rwsplit.results import ResultAccessor, ResultSet

logger = logging.getLogger(__name__)


def is_write(sql: str) -> bool:
    """只看前缀：去掉首尾空白后不以 SELECT 开头（不区分大小写）即视为写语句。"""
    return sql.strip()[:6].upper() != "SELECT"


def escape_param(value: Any, escape: Callable[[str], str]) -> str:
    """先按连接方言转义，再转义 LIKE 通配符 % 和 _。"""
    text = "" if value is None else str(value)
    return escape(text).replace("%", "\\%").replace("_", "\\_")


def render(template: str, params: Sequence[Any], escape: Callable[[str], str]) -> str:
    if not params:
        return template
    values = tuple(escape_param(p, escape) for p in params)
    try:
        return template % values
    except (TypeError, ValueError) as exc:
        raise QueryError(f"Parameter mismatch: {exc} [ {template} ]", sql=template) from exc


def build_insert(table: str, fields: Dict[str, Any]) -> str:
    # 值直接拼成双引号字面量，不做转义
    columns = ", ".join(f"`{k}`" for k in fields)
    values = ", ".join(f'"{v}"' for v in fields.values())
    return f"INSERT INTO `{table}` ({columns}) VALUES ({values})"


def build_update(table: str, fields: Dict[str, Any], extra_clause: Optional[str] = None) -> str:
    assignments = ", ".join(f'`{k}` = "{v}"' for k, v in fields.items())
    sql = f"UPDATE `{table}` SET {assignments}"
    if extra_clause:
        sql += f" {extra_clause}"
    return sql


class QueryExecutor(ResultAccessor):
    """
    按读写类型把语句发往主库或从库。
    一旦本实例上已有主库连接（发生过写操作、开启过事务或调用方主动连接），
    后续读操作也走主库，避免读到复制延迟前的旧数据。
    """

    def __init__(self, manager: ConnectionManager, stick_to_primary_after_write: bool = True):
        self.manager = manager
        self.stick_to_primary_after_write = stick_to_primary_after_write
        self.last_sql: Optional[str] = None
        self.last_result: Optional[ResultSet] = None
        self.last_error: Optional[str] = None
        # 本实例上发生过写操作或打开过主库连接；只在 close(BOTH) 时清除
        self.pinned_to_primary = False

    def _connection_for(self, write: bool) -> ServerConnection:
        if self.manager.primary is not None:
            self.pinned_to_primary = True
        if write:
            conn = self.manager.connect(ConnectionKind.PRIMARY)
            self.pinned_to_primary = True
            return conn
        if self.stick_to_primary_after_write and self.pinned_to_primary:
            # 主库连接被单独关闭后重新连接，仍然读主库
            return self.manager.connect(ConnectionKind.PRIMARY)
        return self.manager.connect(ConnectionKind.REPLICA)

    def execute(self, template: str, params: Sequence[Any] = ()) -> ResultSet:
        write = is_write(template)
        try:
            conn = self._connection_for(write)
        except DatabaseConnectionError as exc:
            self.last_error = str(exc)
            raise QueryError(str(exc), exc.code, template) from exc

        try:
            sql = render(template, params, conn.escape_string)
        except QueryError as exc:
            self.last_sql = template
            self.last_error = str(exc)
            raise

        self.free()
        self.last_sql = sql
        logger.debug("[%s #%d] %s", "write" if write else "read", conn.index, sql)
        try:
            self.last_result = conn.query(sql)
        except QueryError as exc:
            self.last_result = None
            self.last_error = str(exc)
            raise
        self.last_error = None
        return self.last_result

    def _attempt(self, template: str, params: Sequence[Any]) -> Optional[ResultSet]:
        try:
            return self.execute(template, params)
        except QueryError as exc:
            # 连接失败不转成 False，直接抛给调用方
            if isinstance(exc.__cause__, DatabaseConnectionError):
                raise exc.__cause__
            logger.warning("Query failed (code %s): %s", exc.code, exc)
            return None

    def select(self, template: str, params: Sequence[Any] = ()):
        """返回所有行，每行一个按列顺序的 dict；失败返回 False。"""
        result = self._attempt(template, params)
        if result is None:
            return False
        return result.mappings()

    def select_row(self, template: str, params: Sequence[Any] = ()):
        result = self._attempt(template, params)
        if result is None:
            return False
        return result.first()

    def select_flat(self, template: str, params: Sequence[Any] = ()):
        """多行结果压平成一个列表，适合一次取多行中的某一列。"""
        result = self._attempt(template, params)
        if result is None:
            return False
        return result.flat()

    def select_value(self, template: str, params: Sequence[Any] = ()):
        """
        第一行第一列的原始值（0、空字符串也原样返回）。
        没有行时返回 None，失败返回 False，判断失败请用 `is False`。
        """
        result = self._attempt(template, params)
        if result is None:
            return False
        return result.scalar()

    def select_object(self, template: str, params: Sequence[Any] = ()):
        result = self._attempt(template, params)
        if result is None:
            return False
        return result

    def replace(self, template: str, params: Sequence[Any] = ()):
        return self.select_object(template, params)

    def insert(self, template: str, params: Sequence[Any] = ()):
        """返回主库上的自增 ID。"""
        if self._attempt(template, params) is None:
            return False
        return self.insert_id()

    def update(self, template: str, params: Sequence[Any] = ()):
        """返回主库上的受影响行数。"""
        if self._attempt(template, params) is None:
            return False
        return self._primary_affected_rows()

    def delete(self, template: str, params: Sequence[Any] = ()):
        return self.update(template, params)

    def insert_array(self, table: str, fields: Dict[str, Any]):
        if self._attempt(build_insert(table, fields), ()) is None:
            return False
        return self.insert_id()

    def update_array(
        self,
        table: str,
        fields: Dict[str, Any],
        extra_clause: Optional[str] = None,
        params: Sequence[Any] = (),
    ):
        """params 会对整条拼好的 UPDATE 语句做一次参数替换。"""
        return self.update(build_update(table, fields, extra_clause), params)

    def _primary_affected_rows(self) -> Optional[int]:
        if self.manager.primary is None:
            return None
        return self.manager.primary.affected_rows
