"""
模块职能：
- 短信下发通道。SMS_PROVIDER=log（默认，开发环境把验证码打到日志）或 http（向网关 POST JSON）。

函数：
- send_code(phone, code, client=None)：失败抛 SmsError，由服务层转换为业务错误。

日志：
- sms_dev_code / sms_sent / sms_failed
"""
import os
from typing import Optional

import httpx

from hpa.infra.logger import emit, emit_error


class SmsError(Exception):
    pass


def _provider() -> str:
    return os.getenv("SMS_PROVIDER", "log").lower()


def _send_via_gateway(phone: str, code: str, client: httpx.Client):
    url = os.getenv("SMS_GATEWAY_URL", "")
    if not url:
        raise SmsError("SMS_GATEWAY_URL is not set")
    body = {
        "phone": phone,
        "sign_name": os.getenv("SMS_SIGN_NAME", "HPA"),
        "template_id": os.getenv("SMS_TEMPLATE_ID", ""),
        "params": {"code": code},
    }
    headers = {}
    api_key = os.getenv("SMS_API_KEY", "")
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    try:
        resp = client.post(url, json=body, headers=headers, timeout=5.0)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        emit_error("sms_failed", phone=phone, error=str(e))
        raise SmsError(str(e)) from e
    emit("sms_sent", phone=phone, status_code=resp.status_code)


def send_code(phone: str, code: str, client: Optional[httpx.Client] = None):
    provider = _provider()
    if provider == "log":
        emit("sms_dev_code", phone=phone, code=code)
        return
    if provider == "http":
        if client is not None:
            _send_via_gateway(phone, code, client)
        else:
            with httpx.Client() as c:
                _send_via_gateway(phone, code, c)
        return
    raise SmsError(f"unknown SMS_PROVIDER: {provider}")
