"""
测试夹具：用 SQLite 文件模拟主库和两台从库，每台库的 whoami 表记录自己的名字。
"""
import random

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

from rwsplit import Database, ServerConfig, ServerDescriptor
from rwsplit.results import ResultSet


def make_server(tmp_path, name, items=()):
    path = tmp_path / f"{name}.db"
    engine = create_engine(f"sqlite:///{path}", poolclass=NullPool)
    with engine.begin() as conn:
        conn.exec_driver_sql("CREATE TABLE whoami (name VARCHAR(32))")
        conn.exec_driver_sql(f"INSERT INTO whoami (name) VALUES ('{name}')")
        conn.exec_driver_sql("CREATE TABLE t (id INTEGER PRIMARY KEY, a VARCHAR(64))")
        conn.exec_driver_sql(
            "CREATE TABLE items (id INTEGER PRIMARY KEY, name VARCHAR(255) NOT NULL, "
            "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
        )
        for item in items:
            conn.exec_driver_sql(f"INSERT INTO items (name) VALUES ('{item}')")
    engine.dispose()
    # TestClient 在线程池里执行依赖和路由
    return ServerDescriptor(url=f"sqlite:///{path}?check_same_thread=false")


@pytest.fixture
def three_servers(tmp_path):
    return [
        make_server(tmp_path, "primary"),
        make_server(tmp_path, "replica_a", items=("from-replica",)),
        make_server(tmp_path, "replica_b", items=("from-replica",)),
    ]


@pytest.fixture
def config(three_servers):
    return ServerConfig(profiles={"default": three_servers})


@pytest.fixture
def single_config(tmp_path):
    return ServerConfig(profiles={"default": [make_server(tmp_path, "only")]})


@pytest.fixture
def db(config):
    with Database(config, rng=random.Random(1)) as handle:
        yield handle


class FakeConnection:
    """记录收到的语句，不连接任何服务器。"""

    def __init__(self, index, descriptor):
        self.index = index
        self.descriptor = descriptor
        self.statements = []
        self.closed = False
        self.autocommit_enabled = True
        self.insert_id = 0
        self.affected_rows = 0
        self.next_insert_id = 7
        self.server_version = 80033

    def escape_string(self, value):
        return value.replace("\\", "\\\\").replace("'", "\\'")

    def query(self, sql):
        self.statements.append(sql)
        self.affected_rows = 1
        if sql.upper().startswith("INSERT"):
            self.insert_id = self.next_insert_id
        return ResultSet(affected_rows=1)

    def autocommit(self, enabled):
        self.autocommit_enabled = enabled

    def commit(self):
        self.statements.append("COMMIT")

    def rollback(self):
        self.statements.append("ROLLBACK")

    def stat(self):
        return "Uptime: 1"

    def close(self):
        self.closed = True


class FakeConnector:
    def __init__(self):
        self.opened = []

    def __call__(self, index, descriptor):
        conn = FakeConnection(index, descriptor)
        self.opened.append(conn)
        return conn


@pytest.fixture
def fake_connector():
    return FakeConnector()


@pytest.fixture
def fake_config():
    return ServerConfig(
        profiles={"default": [ServerDescriptor(host="db-primary"), ServerDescriptor(host="db-replica")]}
    )
