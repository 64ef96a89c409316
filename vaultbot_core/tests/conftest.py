import asyncio
import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest


def sse(content: Optional[str], **extra: Any) -> str:
    delta: Dict[str, Any] = {}
    if content is not None:
        delta["content"] = content
    choice = {"index": 0, "delta": delta, **extra}
    return "data: " + json.dumps({"choices": [choice]})


def make_config(provider: str = "openai", http_timeout: float = 1.0, **blocks: Dict[str, Any]):
    return SimpleNamespace(
        api_provider=provider,
        ai_provider_settings=dict(blocks),
        http_timeout=http_timeout,
    )


class FakeStreamResponse:
    def __init__(self, lines=(), status_code: int = 200, body: str = "", delay: float = 0.0):
        self.status_code = status_code
        self._lines = list(lines)
        self._body = body.encode("utf-8")
        self._delay = delay
        self.closed = False

    async def aiter_lines(self):
        for line in self._lines:
            if self._delay:
                await asyncio.sleep(self._delay)
            if isinstance(line, BaseException):
                raise line
            yield line

    async def aread(self) -> bytes:
        return self._body


class FakeResponse:
    def __init__(self, status_code: int = 200, json_data: Any = None, text: str = ""):
        self.status_code = status_code
        self._json = json_data
        self.text = text if text or json_data is None else json.dumps(json_data)

    def json(self):
        if self._json is None:
            raise ValueError("response is not JSON")
        return self._json


class StreamContext:
    def __init__(self, response):
        self._response = response

    async def __aenter__(self):
        if isinstance(self._response, BaseException):
            raise self._response
        return self._response

    async def __aexit__(self, *args):
        if not isinstance(self._response, BaseException):
            self._response.closed = True
        return False


class FakeHttp:
    """按顺序返回预设响应，并记录每一次请求。"""

    def __init__(self):
        self.streams: List[Any] = []
        self.gets: List[Any] = []
        self.posts: List[Any] = []
        self.requests: List[Dict[str, Any]] = []

    def client(self, *args, **kwargs):
        return FakeAsyncClient(self)

    @staticmethod
    def _next(queue: List[Any], kind: str):
        if not queue:
            raise AssertionError(f"unexpected {kind} request")
        return queue.pop(0)


class FakeAsyncClient:
    def __init__(self, http: FakeHttp):
        self._http = http

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False

    def stream(self, method, url, json=None, headers=None, **kwargs):
        self._http.requests.append({"method": method, "url": url, "json": json, "headers": headers or {}})
        return StreamContext(self._http._next(self._http.streams, "stream"))

    async def get(self, url, headers=None, **kwargs):
        self._http.requests.append({"method": "GET", "url": url, "headers": headers or {}})
        resp = self._http._next(self._http.gets, "GET")
        if isinstance(resp, BaseException):
            raise resp
        return resp

    async def post(self, url, json=None, files=None, headers=None, **kwargs):
        self._http.requests.append(
            {"method": "POST", "url": url, "json": json, "files": files, "headers": headers or {}}
        )
        resp = self._http._next(self._http.posts, "POST")
        if isinstance(resp, BaseException):
            raise resp
        return resp


@pytest.fixture
def fake_http(monkeypatch):
    http = FakeHttp()
    monkeypatch.setattr("httpx.AsyncClient", http.client)
    return http
