"""
FastAPI 应用：健康检查、读（从库）/写（主库）示例路由。
每个请求一个 Database 句柄：请求内写入后再读会自动走主库。
"""
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from rwsplit import Database, DatabaseConnectionError, ServerConfig, configure_logging, load_config

# 示例表：首次写请求时在主库创建（若不存在），避免启动时强依赖 MySQL
_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS items (
    id INT AUTO_INCREMENT PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""


class ItemCreate(BaseModel):
    name: str


class ItemResponse(BaseModel):
    id: int
    name: str


class ServerStatus(BaseModel):
    server: int
    version: Optional[int] = None
    stat: Optional[str] = None


def get_db(request: Request):
    """每个请求一个句柄，请求结束时关闭主从连接。"""
    db = Database(request.app.state.db_config)
    try:
        yield db
    finally:
        db.close()


def create_app(config: Optional[ServerConfig] = None) -> FastAPI:
    app = FastAPI(title="API DB Read/Write Split Demo")
    app.state.db_config = config or load_config()

    @app.exception_handler(DatabaseConnectionError)
    def database_unavailable(request: Request, exc: DatabaseConnectionError):
        """连不上数据库时返回 503，而不是当作查询失败。"""
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.get("/health")
    def health():
        """健康检查，供 Nginx 或监控使用。"""
        return {"status": "ok"}

    @app.get("/items", response_model=list[ItemResponse])
    def list_items(db: Database = Depends(get_db)):
        """读操作：从库查询。"""
        rows = db.select("SELECT id, name FROM items ORDER BY id")
        if rows is False:
            raise HTTPException(status_code=500, detail=db.error())
        return [ItemResponse(id=r["id"], name=r["name"]) for r in rows]

    @app.post("/items", response_model=ItemResponse)
    def create_item(item: ItemCreate, db: Database = Depends(get_db)):
        """写操作：主库写入，随后的回读也落在主库上。"""
        if db.replace(_CREATE_TABLE_SQL) is False:
            raise HTTPException(status_code=500, detail=db.error())
        row_id = db.insert("INSERT INTO items (name) VALUES ('%s')", [item.name])
        if not row_id:
            raise HTTPException(status_code=500, detail=db.error() or "Insert failed")
        row = db.select_row("SELECT id, name FROM items WHERE id = %s", [row_id])
        if not row:
            raise HTTPException(status_code=500, detail="Inserted row not visible")
        return ItemResponse(id=row["id"], name=row["name"])

    @app.get("/status/{kind}", response_model=ServerStatus)
    def server_status(kind: str, db: Database = Depends(get_db)):
        """kind 为 read 或 write，连接对应服务器并返回版本与状态。"""
        if kind not in ("read", "write"):
            raise HTTPException(status_code=404, detail="Unknown connection type")
        conn = db.connect(kind)
        return ServerStatus(server=conn.index, version=db.server_version(kind), stat=db.stat(kind))

    return app


configure_logging()
app = create_app()
