"""
模块职责：按 IP 的固定窗口限流（进程内存）。
- FixedWindowRateLimiter：计数键为 (ip, 窗口序号)，一把锁覆盖 读-清理-写；
  进入新窗口时顺手清掉旧窗口的计数（惰性清理）。
- RateLimitMiddleware：超过阈值直接返回 429 + 业务码 40010；/health 不计数。

环境变量：RATE_LIMIT_PER_MINUTE（默认 100）
"""
import os
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from hpa.core.errors import ErrorCode, MESSAGES, error_body
from hpa.infra.logger import emit

EXEMPT_PATHS = {"/health"}


class FixedWindowRateLimiter:
    def __init__(self, limit: int, window_seconds: int = 60, clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._counts: Dict[Tuple[str, int], int] = {}
        self._window = -1
        self._lock = threading.Lock()

    def _current_window(self) -> int:
        return int(self._clock() // self.window_seconds)

    def _prune(self, window: int):
        if window == self._window:
            return
        self._window = window
        for key in [k for k in self._counts if k[1] < window]:
            del self._counts[key]

    def hit(self, key: str) -> bool:
        """计一次请求；已达上限返回 False（本次不计数）。"""
        window = self._current_window()
        with self._lock:
            self._prune(window)
            n = self._counts.get((key, window), 0)
            if n >= self.limit:
                return False
            self._counts[(key, window)] = n + 1
            return True

    def remaining(self, key: str) -> int:
        window = self._current_window()
        with self._lock:
            return max(0, self.limit - self._counts.get((key, window), 0))

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._counts)


def default_limit() -> int:
    try:
        return int(os.getenv("RATE_LIMIT_PER_MINUTE", "100"))
    except ValueError:
        return 100


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: Optional[FixedWindowRateLimiter] = None):
        super().__init__(app)
        self.limiter = limiter or FixedWindowRateLimiter(default_limit())

    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        ip = request.client.host if request.client else "unknown"
        if not self.limiter.hit(ip):
            emit("rate_limited", level="WARNING", ip=ip, path=str(request.url.path))
            return JSONResponse(
                status_code=429,
                content=error_body(ErrorCode.RATE_LIMIT_EXCEEDED, MESSAGES[ErrorCode.RATE_LIMIT_EXCEEDED]),
                headers={"X-RateLimit-Limit": str(self.limiter.limit), "X-RateLimit-Remaining": "0"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limiter.limit)
        response.headers["X-RateLimit-Remaining"] = str(self.limiter.remaining(ip))
        return response
