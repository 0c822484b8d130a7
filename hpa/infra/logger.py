"""
HPA 服务日志。

- 一个事件一行 JSON：{"ts", "level", "event", ...字段}，ts 为本地时区毫秒时间。
- configure_logging()：控制台 + 可选按天滚动文件（LOG_TO_FILE / LOG_DIR / LOG_FILE /
  LOG_ROTATE_WHEN / LOG_BACKUP_COUNT），uvicorn 与 sqlalchemy.engine 的日志并入根 logger。
- emit(event, level="INFO", **fields) / emit_error(event, **fields)。

下载令牌与 JWT 不允许出现在日志里：字段名落在 SECRET_FIELDS 中的值一律写成 "***"。
验证码只由开发短信通道（sms_dev_code）打印。
"""
import json
import logging
import os
import pathlib
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from typing import List

LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "true").lower() == "true"
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_FILE = os.getenv("LOG_FILE", "hpa.log")
LOG_ROTATE_WHEN = os.getenv("LOG_ROTATE_WHEN", "midnight")
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "7"))

SECRET_FIELDS = {"token", "access_token", "authorization", "download_token"}
MERGED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy.engine")

_configured = False
_app_logger = logging.getLogger("hpa")


def _build_handlers(level: int) -> List[logging.Handler]:
    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
    handlers: List[logging.Handler] = [console]

    if LOG_TO_FILE:
        pathlib.Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
        fileh = TimedRotatingFileHandler(
            os.path.join(LOG_DIR, LOG_FILE),
            when=LOG_ROTATE_WHEN, backupCount=LOG_BACKUP_COUNT, encoding="utf-8",
        )
        # 文件里只有 JSON 本体
        fileh.setFormatter(logging.Formatter("%(message)s"))
        handlers.append(fileh)

    for h in handlers:
        h.setLevel(level)
    return handlers


def configure_logging():
    global _configured
    if _configured:
        return

    level = getattr(logging, LEVEL, logging.INFO)
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in _build_handlers(level):
        root.addHandler(h)
    root.setLevel(level)

    for name in MERGED_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers = []
        lg.propagate = True

    _configured = True


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat(timespec="milliseconds")


def _scrub(fields: dict) -> dict:
    return {k: ("***" if k.lower() in SECRET_FIELDS else v) for k, v in fields.items()}


def _record(level: str, event: str, fields: dict) -> str:
    rec = {"ts": _now_iso(), "level": level, "event": event, **_scrub(fields)}
    # datetime / Decimal / Enum 等转字符串
    return json.dumps(rec, ensure_ascii=False, default=str)


def emit(event: str, level: str = "INFO", **kwargs):
    """
    业务事件。level 取 DEBUG / INFO / WARNING，未知值按 INFO。
    例：emit("invite_redeemed", user_id=1, course_id=2)
    """
    level = level.upper()
    _app_logger.log(getattr(logging, level, logging.INFO), _record(level, event, kwargs))


def emit_error(event: str, **kwargs):
    """例：emit_error("storage_put_failed", key=..., error=str(e))"""
    _app_logger.error(_record("ERROR", event, kwargs))
