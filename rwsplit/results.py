"""
单条语句的结果集。行在执行时即全部取回，取回后游标随即关闭。
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass
class ResultSet:
    columns: Tuple[str, ...] = ()
    rows: List[tuple] = field(default_factory=list)
    affected_rows: int = 0
    returns_rows: bool = False
    freed: bool = False

    @property
    def num_rows(self) -> Optional[int]:
        """SELECT 类结果的行数；写语句没有行数，返回 None。"""
        if not self.returns_rows:
            return None
        return len(self.rows)

    def mappings(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def first(self) -> Optional[Dict[str, Any]]:
        if not self.rows:
            return None
        return dict(zip(self.columns, self.rows[0]))

    def flat(self) -> List[Any]:
        """所有行的所有单元格按行优先顺序拼成一个列表。"""
        return [value for row in self.rows for value in row]

    def scalar(self) -> Any:
        if not self.rows or not self.rows[0]:
            return None
        return self.rows[0][0]

    def free(self) -> None:
        self.rows = []
        self.freed = True


class ResultAccessor:
    """
    针对最近一次结果的只读访问，没有副作用。
    尚未执行过语句时统一返回 None。
    """

    last_sql: Optional[str] = None
    last_result: Optional[ResultSet] = None
    last_error: Optional[str] = None

    def rows(self) -> Optional[int]:
        if self.last_result is None or self.last_result.freed:
            return None
        return self.last_result.num_rows

    def affected_rows(self) -> Optional[int]:
        if self.last_result is None:
            return None
        return self.last_result.affected_rows

    def insert_id(self) -> Optional[int]:
        """只有主库连接才有自增 ID。"""
        primary = self.manager.primary
        if primary is None:
            return None
        return primary.insert_id

    def last_query(self) -> Optional[str]:
        return self.last_sql

    def error(self) -> Optional[str]:
        return self.last_error

    def free(self) -> bool:
        """释放最近一次结果；没有可释放的结果时返回 False。"""
        if self.last_result is None or self.last_result.freed:
            return False
        self.last_result.free()
        return True
