"""
数据库异常：连接失败与语句执行失败。
均携带驱动原生错误码（未知时为 0）。
"""
from typing import Optional, Tuple


class DatabaseError(Exception):
    def __init__(self, message: str, code: int = 0):
        super().__init__(message)
        self.code = code


class DatabaseConnectionError(DatabaseError):
    """建立或配置连接失败（账号错误、主机不可达、字符集被拒绝）。"""


class QueryError(DatabaseError):
    """服务端执行语句失败；sql 为替换参数后的最终语句。"""

    def __init__(self, message: str, code: int = 0, sql: Optional[str] = None):
        super().__init__(message, code)
        self.sql = sql


def native_error(exc: BaseException) -> Tuple[int, str]:
    """从 SQLAlchemy 包装的 DBAPI 异常中取出 (错误码, 错误信息)。"""
    orig = getattr(exc, "orig", None) or exc
    args = getattr(orig, "args", ())
    # PyMySQL: (errno, message)
    if len(args) >= 2 and isinstance(args[0], int):
        return args[0], str(args[1])
    code = getattr(orig, "sqlite_errorcode", 0)
    return code, str(orig)
