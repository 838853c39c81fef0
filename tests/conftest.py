"""
Shared fixtures: an in-memory Supabase stand-in and a fake Pexels/CDN served
through ``httpx.MockTransport``.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from image_backfill.config import BackfillConfig

SUPABASE_URL = "https://proj.supabase.co"
PUBLIC_BASE  = f"{SUPABASE_URL}/storage/v1/object/public"
JPEG_BYTES   = b"\xff\xd8\xff\xe0fake-jpeg\xff\xd9"


# =============================================================================
# Supabase fake
# =============================================================================


class FakeResponse:
    def __init__(self, data: List[Dict[str, Any]]):
        self.data = data


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload: Optional[Dict[str, Any]] = None
        self.filters: List[tuple] = []
        self.or_expr: Optional[str] = None
        self.window: Optional[tuple] = None

    def select(self, columns: str) -> "FakeQuery":
        self.op = "select"
        return self

    def update(self, payload: Dict[str, Any]) -> "FakeQuery":
        self.op = "update"
        self.payload = payload
        return self

    def or_(self, expr: str) -> "FakeQuery":
        self.or_expr = expr
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append((column, value))
        return self

    def order(self, column: str) -> "FakeQuery":
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self.window = (start, end)
        return self

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.op, self.table))
        if self.op == "select" and self.table in self.db.fail_selects:
            raise RuntimeError(f'relation "{self.table}" does not exist')
        if self.op == "update" and self.table in self.db.fail_updates:
            raise RuntimeError("permission denied for table")

        rows = self.db.tables.get(self.table, [])
        if self.op == "select":
            out = sorted(rows, key=lambda r: r["id"])
            if self.or_expr is not None:
                out = [r for r in out if not r.get("image_url")]
            if self.window is not None:
                start, end = self.window
                out = out[start : end + 1]
            return FakeResponse([dict(r) for r in out])

        matched = [r for r in rows if all(r.get(c) == v for c, v in self.filters)]
        for r in matched:
            r.update(self.payload or {})
        return FakeResponse([dict(r) for r in matched])


class FakeBucket:
    def __init__(self, storage: "FakeStorage", name: str):
        self.storage = storage
        self.name = name

    def upload(self, path: str, file: bytes, file_options: Optional[Dict[str, str]] = None):
        options = file_options or {}
        self.storage.uploads.append((self.name, path, options))
        if self.storage.fail:
            raise RuntimeError(self.storage.fail)
        if (self.name, path) in self.storage.objects and options.get("upsert") != "true":
            raise RuntimeError("The resource already exists")
        self.storage.objects[(self.name, path)] = (file, options.get("content-type"))
        return {"Key": f"{self.name}/{path}"}


class FakeStorage:
    def __init__(self):
        self.objects: Dict[tuple, tuple] = {}
        self.uploads: List[tuple] = []
        self.fail: Optional[str] = None

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self, bucket)


class FakeSupabase:
    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables = tables or {}
        self.storage = FakeStorage()
        self.fail_selects: set = set()
        self.fail_updates: set = set()
        self.calls: List[tuple] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def row(self, table: str, row_id: Any) -> Dict[str, Any]:
        return next(r for r in self.tables[table] if r["id"] == row_id)


# =============================================================================
# Pexels / CDN fake
# =============================================================================


def pexels_photo(photo_id: int, large: Optional[str] = None, original: Optional[str] = None) -> Dict[str, Any]:
    src: Dict[str, str] = {}
    if large:
        src["large"] = large
    if original:
        src["original"] = original
    return {"id": photo_id, "src": src}


class FakeWeb:
    """Routes api.pexels.com searches and image downloads to canned answers."""

    def __init__(self):
        self.photos: Dict[str, List[Dict[str, Any]]] = {}
        self.search_errors: Dict[str, Any] = {}
        self.broken_images: set = set()
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "api.pexels.com":
            query = request.url.params.get("query", "")
            err = self.search_errors.get(query)
            if isinstance(err, list):
                err = err.pop(0) if err else None
            if isinstance(err, Exception):
                raise err
            if isinstance(err, int):
                return httpx.Response(err, json={"error": "nope"})
            return httpx.Response(200, json={"photos": self.photos.get(query, [])})
        if str(request.url) in self.broken_images:
            return httpx.Response(404)
        return httpx.Response(200, content=JPEG_BYTES, headers={"content-type": "image/jpeg"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def searches(self) -> List[str]:
        return [r.url.params["query"] for r in self.requests if r.url.host == "api.pexels.com"]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def web() -> FakeWeb:
    return FakeWeb()


@pytest.fixture
def make_config() -> Callable[..., BackfillConfig]:
    def _make(**overrides) -> BackfillConfig:
        values = dict(
            pexels_api_key="pexels-key",
            supabase_url=SUPABASE_URL,
            supabase_key="service-role",
            tables=("neighborhoods",),
        )
        values.update(overrides)
        return BackfillConfig(**values)

    return _make


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep
