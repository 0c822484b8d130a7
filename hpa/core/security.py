# hpa/core/security.py
"""JWT 生成与解析（PyJWT，HS256），以及随机串工具。

create_access_token() 把 sub/user_id/phone/username/role/iat/exp 写入负载，
默认 7 天过期（JWT_EXPIRE_HOURS）。"""

import os
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt  # PyJWT

ALGORITHM = "HS256"
DEFAULT_SECRET = "hpa-dev-secret-key"


def get_secret_key() -> str:
    return os.getenv("JWT_SECRET") or DEFAULT_SECRET


def get_access_token_expire_hours() -> int:
    try:
        return int(os.getenv("JWT_EXPIRE_HOURS", "168"))
    except ValueError:
        return 168


def create_access_token(payload: Dict[str, Any]) -> str:
    now = datetime.now(timezone.utc)
    to_encode = dict(payload)
    to_encode.update({"iat": now, "exp": now + timedelta(hours=get_access_token_expire_hours())})
    return jwt.encode(to_encode, get_secret_key(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """校验签名与过期；失败时抛 jwt.PyJWTError 的子类。"""
    return jwt.decode(token, get_secret_key(), algorithms=[ALGORITHM])


def random_string(n: int, alphabet: str = string.ascii_lowercase + string.digits) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(n))


def random_hex(n: int) -> str:
    return secrets.token_hex(n // 2 + 1)[:n]


def random_digits(n: int) -> str:
    return "".join(secrets.choice(string.digits) for _ in range(n))
