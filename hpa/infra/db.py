# hpa/infra/db.py
"""模块职能：

读取 DATABASE_URL（缺省时由 DB_PATH 拼出 SQLite 地址），创建 SQLAlchemy 引擎

暴露 SessionLocal、get_db()（FastAPI 依赖）

init_db()：启动时统一建表（含 SQLite 数据目录）"""

import os
import pathlib
from typing import Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from hpa.core.models import Base
import hpa.core.models_user  # noqa: F401  # 导入以注册 users / verification_codes

DB_PATH = os.getenv("DB_PATH", "./data/hpa.db")
DATABASE_URL = os.getenv("DATABASE_URL") or f"sqlite:///{DB_PATH}"

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def _ensure_sqlite_dir():
    if not DATABASE_URL.startswith("sqlite:///"):
        return
    path = DATABASE_URL[len("sqlite:///"):]
    if path and path != ":memory:":
        pathlib.Path(path).resolve().parent.mkdir(parents=True, exist_ok=True)


def init_db():
    _ensure_sqlite_dir()
    Base.metadata.create_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
    """FastAPI 依赖函数：yield 一个 Session，用后自动关闭。"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
