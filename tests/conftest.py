import asyncio
import copy
import sys
import pathlib
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

# Ensure repository root is on sys.path so packages (adapters, core, plugins) import correctly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from adapters.storage_adapter import StorageAdapter
from core.config import Config
from core.storage import Storage


class InMemoryStorageAdapter(StorageAdapter):
    def __init__(self):
        self._data: dict[str, dict[str, dict]] = {}
        self.closed = False
        self.fail_deletes = False
        self.delete_gate: Optional[asyncio.Event] = None
        self.delete_blocked = asyncio.Event()
        self.writes: list[tuple[str, str]] = []

    async def get(self, namespace: str, key: str):
        value = self._data.get(namespace, {}).get(key)
        return copy.deepcopy(value)

    async def set(self, namespace: str, key: str, value: dict):
        self.writes.append((namespace, key))
        self._data.setdefault(namespace, {})[key] = copy.deepcopy(value)

    async def delete(self, namespace: str, key: str) -> bool:
        if self.fail_deletes:
            raise RuntimeError("storage unavailable")
        if self.delete_gate is not None:
            self.delete_blocked.set()
            await self.delete_gate.wait()
        ns = self._data.get(namespace, {})
        if key in ns:
            del ns[key]
            return True
        return False

    async def list_keys(self, namespace: str) -> list[str]:
        return sorted(self._data.get(namespace, {}).keys())

    @asynccontextmanager
    async def transaction(self):
        snapshot = copy.deepcopy(self._data)
        try:
            yield
        except BaseException:
            self._data = snapshot
            raise

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def memory_adapter():
    return InMemoryStorageAdapter()


@pytest.fixture
def storage(memory_adapter):
    return Storage(memory_adapter)


# --- fake Bilibili passport / API ------------------------------------------

QR_KEY_PREFIX = "qr-key-"
# Элемент poll_script: ответ задерживается дольше таймаута клиента
POLL_HANG = "hang"


@dataclass
class FakeBilibili:
    """Состояние фейкового сервера: сценарий опроса и журнал запросов."""

    poll_script: list = field(default_factory=lambda: [0])
    nav_status: int = 200
    nav_identity: dict = field(default_factory=lambda: {"mid": 42, "uname": "u42"})
    redirect_status: int = 200
    requests: list = field(default_factory=list)
    issued: int = 0
    base_url: str = ""

    def paths(self) -> list[str]:
        return [path for path, _ in self.requests]

    def cookie_sent_to(self, path: str) -> Optional[str]:
        for req_path, cookie in reversed(self.requests):
            if req_path == path:
                return cookie
        return None


def build_fake_app(fake: FakeBilibili) -> web.Application:
    async def record(request: web.Request) -> None:
        fake.requests.append((request.path, request.headers.get("Cookie")))

    async def generate(request):
        await record(request)
        fake.issued += 1
        key = f"{QR_KEY_PREFIX}{fake.issued}"
        return web.json_response({
            "code": 0,
            "message": "0",
            "ttl": 1,
            "data": {
                "url": f"https://account.bilibili.com/h5/account-h5/auth/scan-web?qrcode_key={key}",
                "qrcode_key": key,
            },
        })

    async def poll(request):
        await record(request)
        status = fake.poll_script.pop(0) if len(fake.poll_script) > 1 else fake.poll_script[0]
        if status == POLL_HANG:
            await asyncio.sleep(1.0)
            return web.json_response({"code": 0, "message": "0", "data": None})
        if isinstance(status, dict):
            return web.json_response(status)
        data = {"url": "", "refresh_token": "", "timestamp": 0, "code": status, "message": ""}
        if status == 0:
            data["url"] = f"{fake.base_url}/crossDomain?DedeUserID=42&gourl=https%3A%2F%2Fwww.bilibili.com"
            data["refresh_token"] = "refresh-1"
        return web.json_response({"code": 0, "message": "0", "data": data})

    async def cross_domain(request):
        await record(request)
        if fake.redirect_status != 200:
            return web.Response(status=fake.redirect_status)
        resp = web.Response(status=302, headers={"Location": "/landing"})
        resp.set_cookie("SESSDATA", "abc123", max_age=86400, path="/")
        resp.set_cookie("DedeUserID", "42", max_age=86400, path="/")
        return resp

    async def landing(request):
        await record(request)
        resp = web.Response(text="ok")
        resp.set_cookie("bili_jct", "csrf-token", max_age=86400, path="/")
        return resp

    async def report(request):
        await record(request)
        resp = web.json_response({"code": 0, "message": "0"})
        resp.set_cookie("report_seen", "1", max_age=3600, path="/")
        return resp

    async def nav(request):
        await record(request)
        if fake.nav_status != 200:
            return web.Response(status=fake.nav_status)
        cookie = request.headers.get("Cookie") or ""
        if "SESSDATA=abc123" not in cookie:
            return web.json_response({"code": -101, "message": "账号未登录", "data": {"isLogin": False}})
        return web.json_response({
            "code": 0,
            "message": "0",
            "ttl": 1,
            "data": {
                "isLogin": True,
                "face": "https://i0.hdslb.com/face.jpg",
                "vip": {"type": 2, "status": 1},
                **fake.nav_identity,
            },
        })

    app = web.Application()
    app.router.add_get("/x/passport-login/web/qrcode/generate", generate)
    app.router.add_get("/x/passport-login/web/qrcode/poll", poll)
    app.router.add_get("/crossDomain", cross_domain)
    app.router.add_get("/landing", landing)
    app.router.add_get("/x/web-interface/nav", nav)
    app.router.add_post("/x/v2/history/report", report)
    return app


@pytest.fixture
async def fake_bilibili():
    fake = FakeBilibili()
    server = TestServer(build_fake_app(fake))
    await server.start_server()
    fake.base_url = str(server.make_url("/")).rstrip("/")
    try:
        yield fake
    finally:
        await server.close()


@pytest.fixture
def config(fake_bilibili):
    return Config(
        db_path=":memory:",
        passport_base_url=fake_bilibili.base_url,
        api_base_url=fake_bilibili.base_url,
        http_timeout=5.0,
        service_call_timeout=10.0,
    )
