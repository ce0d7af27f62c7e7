"""
按名称缓存 Database 实例：同一名称只创建一次，由调用方的组合根持有。
"""
import logging
from typing import Dict, List, Optional

from rwsplit.config import ServerConfig, load_config
from rwsplit.database import Database

logger = logging.getLogger(__name__)


class DatabaseRegistry:
    def __init__(self, config: Optional[ServerConfig] = None, **options):
        self.config = config or load_config()
        # 透传给 Database 的参数，例如 rng、connector
        self.options = options
        self._instances: Dict[str, Database] = {}

    def instance(self, name: str = "default") -> Database:
        db = self._instances.get(name)
        if db is None:
            logger.debug("Creating database instance %r", name)
            db = self._instances[name] = Database(self.config, name=name, **self.options)
        return db

    def names(self) -> List[str]:
        return list(self._instances)

    def __contains__(self, name: str) -> bool:
        return name in self._instances

    def clear(self) -> None:
        """关闭并移除所有实例，测试之间用它隔离状态。"""
        for db in self._instances.values():
            db.close()
        self._instances.clear()
