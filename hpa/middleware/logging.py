"""
模块职责：请求级日志中间件。
- 为每个请求生成 request_id（优先沿用上游的 x-request-id）；
- 记录 request_start 与 request_end（含耗时、状态码、客户端 IP）；
- 捕获异常并输出 request_error，随后抛出让 FastAPI 处理。
"""
import time
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from hpa.infra.logger import emit, emit_error


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        path = str(request.url.path)
        ip = request.client.host if request.client else None
        start = time.perf_counter()
        emit("request_start", request_id=rid, method=request.method, path=path, ip=ip)
        try:
            response: Response = await call_next(request)
        except Exception as e:
            emit_error(
                "request_error",
                request_id=rid,
                method=request.method,
                path=path,
                error=repr(e),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise
        emit(
            "request_end",
            request_id=rid,
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        response.headers["x-request-id"] = rid
        return response
