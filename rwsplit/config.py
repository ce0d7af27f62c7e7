"""
从环境变量读取主库/从库 DB 配置，供 SQLAlchemy 使用。
每个配置档（profile）是一组有序的服务器描述：下标 0 为主库，其余为从库候选。
优先使用 DB_PRIMARY_URL / DB_REPLICA_URLS；未设置时由 HOST/PORT/USER/PASSWORD/DATABASE 拼接。
非 default 的配置档使用 DB_<NAME>_ 前缀，例如 DB_REPORTS_PRIMARY_HOST。
"""
import logging
import os
from typing import Dict, List, Mapping, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from sqlalchemy.engine import make_url

load_dotenv()

LOG_CONFIG = {
    "level": os.getenv("DB_LOG_LEVEL", "INFO").upper(),
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(level=level or LOG_CONFIG["level"], format=LOG_CONFIG["format"])


def _build_mysql_url(host: str, port: int, user: str, password: str, database: str, charset: str = "") -> str:
    safe_password = quote_plus(password) if password else ""
    url = f"mysql+pymysql://{user}:{safe_password}@{host}:{port}/{database}"
    if charset:
        url += f"?charset={charset}"
    return url


class ServerDescriptor(BaseModel):
    host: str = "127.0.0.1"
    user: str = "root"
    password: str = ""
    database: str = "app_db"
    port: int = 3306
    charset: str = "utf8mb4"
    # 完整的 SQLAlchemy URL，设置后只沿用 charset（仅对 MySQL 生效）
    url: Optional[str] = None

    def sqlalchemy_url(self) -> str:
        if self.url:
            return self._apply_charset(self.url)
        return _build_mysql_url(self.host, self.port, self.user, self.password, self.database, self.charset)

    def _apply_charset(self, url: str) -> str:
        """MySQL 的完整 URL 未带 charset 时补上描述里的 charset。"""
        parsed = make_url(url)
        if not self.charset or parsed.get_backend_name() != "mysql" or "charset" in parsed.query:
            return url
        return parsed.update_query_dict({"charset": self.charset}).render_as_string(hide_password=False)

    def label(self) -> str:
        """日志用的服务器标识，不含密码。"""
        if self.url:
            return self.url.split("@")[-1]
        return f"{self.database}@{self.host}:{self.port}"


class ServerConfig(BaseModel):
    active: str = "default"
    profiles: Dict[str, List[ServerDescriptor]] = Field(default_factory=dict)
    stick_to_primary_after_write: bool = True

    @property
    def servers(self) -> List[ServerDescriptor]:
        """当前配置档的服务器列表；配置档不存在时为空列表。"""
        return self.profiles.get(self.active, [])


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _prefix(profile: str) -> str:
    return "DB_" if profile == "default" else f"DB_{profile.upper()}_"


def _load_profile(env: Mapping[str, str], profile: str) -> List[ServerDescriptor]:
    p = _prefix(profile)
    url = env.get(f"{p}PRIMARY_URL")
    if url:
        primary = ServerDescriptor(url=url)
    else:
        primary = ServerDescriptor(
            host=env.get(f"{p}PRIMARY_HOST", "127.0.0.1"),
            port=int(env.get(f"{p}PRIMARY_PORT", "3306")),
            user=env.get(f"{p}PRIMARY_USER", "root"),
            password=env.get(f"{p}PRIMARY_PASSWORD", ""),
            database=env.get(f"{p}PRIMARY_DATABASE", "app_db"),
            charset=env.get(f"{p}PRIMARY_CHARSET", "utf8mb4"),
        )

    replica_urls = _split(env.get(f"{p}REPLICA_URLS") or env.get(f"{p}REPLICA_URL"))
    if replica_urls:
        return [primary] + [ServerDescriptor(url=u) for u in replica_urls]

    # 从库账号等未单独设置时沿用主库的值
    replicas = [
        ServerDescriptor(
            host=host,
            port=int(env.get(f"{p}REPLICA_PORT", str(primary.port))),
            user=env.get(f"{p}REPLICA_USER", primary.user),
            password=env.get(f"{p}REPLICA_PASSWORD", primary.password),
            database=env.get(f"{p}REPLICA_DATABASE", primary.database),
            charset=env.get(f"{p}REPLICA_CHARSET", primary.charset),
        )
        for host in _split(env.get(f"{p}REPLICA_HOSTS"))
    ]
    return [primary] + replicas


def load_config(environ: Optional[Mapping[str, str]] = None) -> ServerConfig:
    env = os.environ if environ is None else environ
    names = _split(env.get("DB_PROFILES")) or ["default"]
    return ServerConfig(
        active=env.get("DB_ACTIVE", "default"),
        profiles={name: _load_profile(env, name) for name in names},
        stick_to_primary_after_write=env.get("DB_STICK_TO_PRIMARY", "true").lower() == "true",
    )
