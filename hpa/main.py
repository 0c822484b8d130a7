"""
应用入口：
- 加载 .env（先 .env.example 作默认，再用 .env 覆盖）
- lifespan 启动阶段：配置日志 → 打印 logger_config → 初始化数据库
- 装载异常处理、请求日志中间件、IP 限流中间件、路由
- 提供 /health
"""
from pathlib import Path
from dotenv import load_dotenv

# 1) 先加载 .env，务必在导入 logger / db 之前
ROOT = Path(__file__).resolve().parents[1]
ENV = ROOT / ".env"
ENV_EXAMPLE = ROOT / ".env.example"
if ENV_EXAMPLE.exists():
    load_dotenv(ENV_EXAMPLE, override=False)
if ENV.exists():
    load_dotenv(ENV, override=True)

# 2) 正常导入
from contextlib import asynccontextmanager
from fastapi import FastAPI
from hpa.core.errors import register_exception_handlers
from hpa.middleware.logging import RequestLoggingMiddleware
from hpa.middleware.rate_limit import RateLimitMiddleware
from hpa.infra.logger import (
    configure_logging, emit,
    LOG_TO_FILE, LOG_DIR, LOG_FILE, LOG_ROTATE_WHEN, LOG_BACKUP_COUNT,
)
from hpa.infra.db import init_db
from hpa.api import admin as admin_api
from hpa.api import auth as auth_api
from hpa.api import commerce as commerce_api
from hpa.api import content as content_api
from hpa.api import courses as courses_api
from hpa.api import user as user_api

# 3) lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    configure_logging()
    emit(
        "logger_config",
        to_file=LOG_TO_FILE, dir=LOG_DIR, file=LOG_FILE,
        when=LOG_ROTATE_WHEN, backup=LOG_BACKUP_COUNT,
    )
    init_db()
    emit("db_init_done")
    yield
    # shutdown
    emit("app_shutdown")

# 4) 创建应用并装配
app = FastAPI(title="HPA Course Platform", lifespan=lifespan)
register_exception_handlers(app)
# 后加的中间件在外层：限流先于请求日志执行
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(RateLimitMiddleware)

@app.get("/health")
def health():
    return {"ok": True}

# 路由
app.include_router(auth_api.router,     prefix="/api/v1/auth",  tags=["auth"])
app.include_router(user_api.router,     prefix="/api/v1/user",  tags=["user"])
app.include_router(content_api.router,  prefix="/api/v1/hpa",   tags=["content"])
app.include_router(courses_api.router,  prefix="/api/v1/hpa",   tags=["courses"])
app.include_router(commerce_api.router, prefix="/api/v1/hpa",   tags=["commerce"])
app.include_router(admin_api.router,    prefix="/api/v1/admin", tags=["admin"])
