"""
统一成功响应：{"code": 0, "message": "success", "data": ...}
以及分页参数的夹取与分页体。
"""
from typing import Any, List, Tuple

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50


def ok(data: Any = None, message: str = "success") -> dict:
    return {"code": 0, "message": message, "data": data}


def clamp_page(page: int, page_size: int) -> Tuple[int, int]:
    """page 小于 1 按 1；page_size 不在 1..50 时回落到 20。"""
    if page < 1:
        page = 1
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        page_size = DEFAULT_PAGE_SIZE
    return page, page_size


def paged(items: List[Any], total: int, page: int, page_size: int) -> dict:
    return {"list": items, "total": total, "page": page, "page_size": page_size}
