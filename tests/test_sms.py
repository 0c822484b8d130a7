# tests/test_sms.py
"""短信通道：开发通道只打日志；网关通道的请求体、鉴权头与失败转换。"""
import json

import httpx
import pytest

from hpa.infra import sms


def test_log_provider_does_not_call_out(monkeypatch):
    monkeypatch.setenv("SMS_PROVIDER", "log")

    def boom(request):
        raise AssertionError("should not send")

    sms.send_code("13900000000", "123456", client=httpx.Client(transport=httpx.MockTransport(boom)))


def test_http_provider_posts_to_gateway(monkeypatch):
    monkeypatch.setenv("SMS_PROVIDER", "http")
    monkeypatch.setenv("SMS_GATEWAY_URL", "https://sms.example.com/send")
    monkeypatch.setenv("SMS_API_KEY", "k-1")
    monkeypatch.setenv("SMS_TEMPLATE_ID", "T100")
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    sms.send_code("13900000000", "654321", client=httpx.Client(transport=httpx.MockTransport(handler)))
    assert seen["url"] == "https://sms.example.com/send"
    assert seen["auth"] == "Bearer k-1"
    assert seen["body"] == {
        "phone": "13900000000", "sign_name": "HPA", "template_id": "T100", "params": {"code": "654321"},
    }


def test_gateway_failure_raises(monkeypatch):
    monkeypatch.setenv("SMS_PROVIDER", "http")
    monkeypatch.setenv("SMS_GATEWAY_URL", "https://sms.example.com/send")
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(503)))
    with pytest.raises(sms.SmsError):
        sms.send_code("13900000000", "111111", client=client)


def test_missing_gateway_url_and_unknown_provider(monkeypatch):
    monkeypatch.setenv("SMS_PROVIDER", "http")
    monkeypatch.delenv("SMS_GATEWAY_URL", raising=False)
    with pytest.raises(sms.SmsError):
        sms.send_code("13900000000", "111111")

    monkeypatch.setenv("SMS_PROVIDER", "carrier-pigeon")
    with pytest.raises(sms.SmsError):
        sms.send_code("13900000000", "111111")


def test_send_code_endpoint_maps_gateway_failure(client, monkeypatch):
    from conftest import new_phone

    monkeypatch.setenv("SMS_PROVIDER", "http")
    monkeypatch.setenv("SMS_GATEWAY_URL", "http://127.0.0.1:9/unreachable")
    r = client.post("/api/v1/auth/send-code", json={"phone": new_phone()})
    assert r.status_code == 500
    assert r.json()["code"] == 50000
