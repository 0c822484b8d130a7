# scripts/init_db.py
"""
建表脚本：按当前模型创建全部表（若不存在），含 paid 订单的部分唯一索引。
安全：不会修改已有表结构与数据。可被测试直接导入调用（提供 run()）。
"""
import os
import sys

# 确保脚本在控制台有输出；不影响主服务的日志设置
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from hpa.infra.db import DATABASE_URL, init_db  # noqa: E402
from hpa.infra.logger import emit  # noqa: E402


def run():
    emit("init_db_begin", database_url=DATABASE_URL)
    print("[init_db] creating tables if not exists ...", flush=True)
    init_db()
    emit("init_db_done", status="ok")
    print("[init_db] done.", flush=True)


if __name__ == "__main__":
    print(f"[init_db] DATABASE_URL={DATABASE_URL}", flush=True)
    try:
        run()
        sys.exit(0)
    except Exception as e:
        emit("init_db_error", error=str(e))
        print(f"[init_db] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)
