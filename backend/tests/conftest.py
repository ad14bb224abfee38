"""
Notion Gallery Proxy 测试配置文件

这个文件包含 pytest fixtures（测试夹具）和测试替身：
- InMemoryObjectStore：内存版持久化存储，可以模拟写入失败
- OriginServer：基于 httpx.MockTransport 的图片源站，可以控制延迟和状态码
- notion_transport：模拟 Notion API 的 MockTransport

所有依赖都通过 create_app(...) 显式注入，不使用全局单例。
"""

import asyncio
import sys
import time
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest
from PIL import Image

# 添加 backend 目录到 Python 路径
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from config import Settings
from image_cache.object_store import (
    DEFAULT_CONTENT_TYPE,
    ObjectInfo,
    ObjectNotFound,
    ObjectStoreError,
    StoredObject,
    _iter_body,
)
from notion_source import NotionClient


# ============================================
# 测试数据
# ============================================

PAGE_ID = "11111111-2222-3333-4444-555555555555"
FILE_ID = "99999999-8888-7777-6666-555555555555"
SIGNED_URL = (
    "https://prod-files-secure.s3.us-west-2.amazonaws.com/"
    f"aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee/{FILE_ID}/photo.jpg"
    "?X-Amz-Algorithm=AWS4-HMAC-SHA256&X-Amz-Expires=3600&X-Amz-Signature=abc123"
)
EXTERNAL_URL = "https://images.example.com/static/cover.png"
PUBLIC_URL = "https://gallery.test"


def make_jpeg(width: int = 64, height: int = 48, color=(200, 30, 30)) -> bytes:
    """生成一张真实的 JPEG 图片"""
    output = BytesIO()
    Image.new("RGB", (width, height), color).save(output, format="JPEG")
    return output.getvalue()


def make_page(
    page_id: str = PAGE_ID,
    files: Optional[List[Dict[str, Any]]] = None,
    title: str = "Kyoto",
    year: Optional[int] = 2023,
) -> Dict[str, Any]:
    """构造一个 Notion 页面对象"""
    if files is None:
        files = [
            {"type": "file", "name": "photo.jpg", "file": {"url": SIGNED_URL}},
            {"type": "external", "name": "cover.png", "external": {"url": EXTERNAL_URL}},
        ]
    return {
        "object": "page",
        "id": page_id,
        "properties": {
            "Name": {"type": "title", "title": [{"plain_text": title}]},
            "Subtitle": {"type": "rich_text", "rich_text": [{"plain_text": "Autumn"}]},
            "Location": {"type": "rich_text", "rich_text": [{"plain_text": "Japan"}]},
            "Year": {"type": "number", "number": year},
            "Description": {"type": "rich_text", "rich_text": [{"plain_text": "Temples"}]},
            "Images": {"type": "files", "files": files},
        },
    }


class FakeClock:
    """手动推进的时钟"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================
# 持久化存储替身
# ============================================

class InMemoryObjectStore:
    """
    内存版 ObjectStore，记录每种操作的调用次数。

    fail_put=True 时所有写入都抛出 ObjectStoreError。
    """

    def __init__(self, fail_put: bool = False, fail_head: bool = False):
        self.objects: Dict[str, StoredObject] = {}
        self.fail_put = fail_put
        self.fail_head = fail_head
        self.head_calls = 0
        self.put_calls = 0
        self.get_calls = 0

    async def head(self, key: str) -> Optional[ObjectInfo]:
        self.head_calls += 1
        if self.fail_head:
            raise ObjectStoreError("store unreachable")
        obj = self.objects.get(key)
        return obj.info if obj else None

    async def get(self, key: str) -> StoredObject:
        self.get_calls += 1
        if key not in self.objects:
            raise ObjectNotFound(key)
        return self.objects[key]

    async def put(self, key: str, body, content_type: str) -> ObjectInfo:
        self.put_calls += 1
        data = b"".join([chunk async for chunk in _iter_body(body)])
        if self.fail_put:
            raise ObjectStoreError("write refused")
        info = ObjectInfo(
            key=key,
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            size_bytes=len(data),
            created_at=time.time(),
        )
        self.objects[key] = StoredObject(info=info, data=data)
        return info


# ============================================
# 图片源站替身
# ============================================

class OriginServer:
    """
    模拟图片源站。

    routes: 去掉 query string 的 URL -> (状态码, 内容, content-type)
    delay: 每个请求的人为延迟（秒），用于并发测试
    fail_first: 前 N 个请求抛出网络错误，用于重试测试
    """

    def __init__(self, delay: float = 0.0, fail_first: int = 0):
        self.routes: Dict[str, tuple] = {}
        self.delay = delay
        self.fail_first = fail_first
        self.requests: List[httpx.Request] = []

    def add(self, url: str, body: bytes, status: int = 200, content_type: str = "image/jpeg"):
        self.routes[url.split("?", 1)[0]] = (status, body, content_type)

    def count(self, url: str) -> int:
        base = url.split("?", 1)[0]
        return sum(1 for r in self.requests if str(r.url).split("?", 1)[0] == base)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_first > 0:
            self.fail_first -= 1
            raise httpx.ConnectError("connection reset", request=request)
        if self.delay:
            await asyncio.sleep(self.delay)
        route = self.routes.get(str(request.url).split("?", 1)[0])
        if route is None:
            return httpx.Response(404, content=b"missing")
        status, body, content_type = route
        headers = {"content-type": content_type} if content_type else {}
        return httpx.Response(status, content=body, headers=headers)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


# ============================================
# Notion API 替身
# ============================================

class NotionStub:
    """
    模拟 Notion API，按路径返回固定数据。

    error_status 不为 None 时所有请求都返回该状态码。
    """

    def __init__(self, pages: Optional[List[Dict[str, Any]]] = None, blocks=None):
        self.pages = pages if pages is not None else [make_page()]
        self.blocks: Dict[str, List[Dict[str, Any]]] = blocks or {}
        self.error_status: Optional[int] = None
        self.requests: List[httpx.Request] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error_status is not None:
            return httpx.Response(self.error_status, json={"message": "boom"})

        path = request.url.path
        if path.endswith("/query") and request.method == "POST":
            return httpx.Response(200, json={
                "results": self.pages,
                "has_more": False,
                "next_cursor": None,
            })
        if path.startswith("/v1/pages/"):
            page_id = path.rsplit("/", 1)[-1]
            for page in self.pages:
                if page["id"] == page_id:
                    return httpx.Response(200, json=page)
            return httpx.Response(404, json={"message": "not found"})
        if path.startswith("/v1/blocks/") and path.endswith("/children"):
            block_id = path.split("/")[3]
            return httpx.Response(200, json={
                "results": self.blocks.get(block_id, []),
                "has_more": False,
                "next_cursor": None,
            })
        return httpx.Response(404, json={"message": "unknown route"})

    def client(self, settings: Settings) -> NotionClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return NotionClient(settings, http_client=http_client)


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def settings():
    """带完整 Notion 配置的测试设置"""
    return Settings(
        notion_api_key="secret-token",
        notion_database_id="db123",
        public_url=PUBLIC_URL,
        image_cache_wait_seconds=5.0,
        image_fetch_retries=1,
    )


@pytest.fixture
def object_store():
    return InMemoryObjectStore()


@pytest.fixture
def origin():
    """预置两张图片的源站"""
    server = OriginServer()
    server.add(SIGNED_URL, make_jpeg(), content_type="image/jpeg")
    server.add(EXTERNAL_URL, b"\x89PNG\r\n\x1a\nfake-png", content_type="image/png")
    return server


@pytest.fixture
def notion():
    return NotionStub()
