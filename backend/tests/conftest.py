"""
Shared fixtures: a file-backed SQLite primary store per test, an in-memory
Redis stand-in with a controllable clock, and an OpenSearch stand-in.

FakeOpenSearch applies the structured filter clauses (term/terms/range) but
ignores the free-text query entirely, so it behaves like a maximally
typo-tolerant index: every candidate in scope comes back and correctness
depends on hit verification.
"""
import uuid
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from opensearchpy import NotFoundError, TransportError, ConnectionError as OpenSearchConnectionError

from database.connection import Database
from database.models import Project
from services.cache_service import CacheService
from services.log_ingestion import LogIngestionService
from services.log_processor import LogProcessor
from services.log_store import LogStore, ProjectStore
from services.opensearch_client import SearchIndexClient

PROJECT_ID = "test-project"


# ── Fake Redis ────────────────────────────────────────────────────────
class FakeRedis:
    """In-memory Redis supporting get/set(nx, ex)/setex/delete with TTLs."""

    def __init__(self):
        self._store: Dict[str, Any] = {}
        self._expires: Dict[str, float] = {}
        self.now = 0.0

    def advance(self, seconds: float):
        self.now += seconds

    def _alive(self, key: str) -> bool:
        expires = self._expires.get(key)
        if expires is not None and expires <= self.now:
            self._store.pop(key, None)
            self._expires.pop(key, None)
        return key in self._store

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> Optional[str]:
        return self._store.get(key) if self._alive(key) else None

    async def set(self, key: str, value: str, ex: Optional[int] = None, nx: bool = False, **kwargs):
        if nx and self._alive(key):
            return None
        self._store[key] = value
        if ex is not None:
            self._expires[key] = self.now + ex
        else:
            self._expires.pop(key, None)
        return True

    async def setex(self, key: str, time: int, value: str):
        return await self.set(key, value, ex=time)

    async def delete(self, *keys: str):
        for key in keys:
            self._store.pop(key, None)
            self._expires.pop(key, None)

    async def close(self):
        pass


# ── Fake OpenSearch ───────────────────────────────────────────────────
class FakeIndices:
    def __init__(self):
        self.names: set = set()

    async def exists(self, index: str) -> bool:
        return index in self.names

    async def create(self, index: str, body: dict):
        self.names.add(index)


class FakeOpenSearch:
    def __init__(self):
        self.documents: Dict[str, dict] = {}
        self.indices = FakeIndices()
        self.search_bodies: List[dict] = []
        self.fail_searches = False
        self.fail_deletes = False

    async def info(self):
        return {"version": {"number": "2.11.0"}}

    async def index(self, index: str, id: str, body: dict):
        self.documents[id] = dict(body)

    @staticmethod
    def _passes(document: dict, clause: dict) -> bool:
        if "term" in clause:
            (field, value), = clause["term"].items()
            return document.get(field) == value
        if "terms" in clause:
            (field, values), = clause["terms"].items()
            return document.get(field) in values
        if "range" in clause:
            (field, bounds), = clause["range"].items()
            value = document.get(field)
            if "gte" in bounds and value < bounds["gte"]:
                return False
            if "lte" in bounds and value > bounds["lte"]:
                return False
            return True
        raise AssertionError(f"unexpected clause {clause}")

    async def search(self, index: str, body: dict):
        if self.fail_searches:
            raise OpenSearchConnectionError("N/A", "search index unreachable", None)
        self.search_bodies.append(body)

        filters = body["query"]["bool"]["filter"]
        docs = [d for d in self.documents.values() if all(self._passes(d, c) for c in filters)]
        if "sort" in body:
            (field, spec), = body["sort"][0].items()
            docs.sort(key=lambda d: d.get(field) or 0, reverse=spec["order"] == "desc")

        start, size = body["from"], body["size"]
        return {
            "hits": {
                "total": {"value": len(docs)},
                "hits": [{"_source": d} for d in docs[start:start + size]],
            }
        }

    async def delete(self, index: str, id: str):
        if self.fail_deletes:
            raise TransportError(500, "delete_failed", {})
        if id not in self.documents:
            raise NotFoundError(404, "not_found", {})
        del self.documents[id]

    async def close(self):
        pass


# ── Fixtures ──────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'keepwatch.db'}")
    await db.connect()
    await db.init_models()
    yield db
    await db.close()


@pytest.fixture
def log_store(database):
    return LogStore(database)


@pytest.fixture
def project_store(database):
    return ProjectStore(database)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    service = CacheService("redis://test", key_prefix="kw")
    service.client = fake_redis
    return service


@pytest.fixture
def fake_opensearch():
    return FakeOpenSearch()


@pytest.fixture
def search_index(fake_opensearch):
    client = SearchIndexClient(hosts=[{"host": "test", "port": 9200}], index_name="logs")
    client.client = fake_opensearch
    return client


@pytest_asyncio.fixture
async def project(project_store):
    return await project_store.add_project(
        Project(id=uuid.uuid4().hex, project_id=PROJECT_ID, name="Test Project", alarms=[])
    )


@pytest.fixture
def ingestion(log_store, project_store, search_index):
    return LogIngestionService(log_store, project_store, LogProcessor(), search_index=search_index)


def make_log(message: str, timestamp_ms: int, **overrides) -> Dict[str, Any]:
    payload = {
        "level": "ERROR",
        "environment": "DEVELOPMENT",
        "projectId": PROJECT_ID,
        "message": message,
        "timestampMS": timestamp_ms,
    }
    payload.update(overrides)
    return payload


@pytest_asyncio.fixture
async def seeded_logs(project, ingestion):
    """A mixed set of records stored in both the primary store and the index."""
    payloads = [
        make_log("a silent engine crashes", 1_000, level="DEBUG"),
        make_log("flower engine roars", 2_000, level="DEBUG"),
        make_log("flower engine hums", 3_000, level="INFO", environment="PRODUCTION"),
        make_log("Connection refused by upstream", 4_000),
        make_log("Request failed after timeout", 5_000, hostname="web-01"),
        make_log(
            "Unhandled exception",
            6_000,
            stackTrace=[{"message": "TypeError: x is undefined", "line": 42, "file": "app.js", "function": "render"}],
            details={"userId": "u-123", "feature": "checkout"},
        ),
        make_log(
            "Worker crashed",
            7_000,
            rawStackTrace="Traceback (most recent call last):\n  File \"worker.py\", line 9\nKeyError: 'job'",
            logType="system",
        ),
    ]
    return [await ingestion.store_log_message(p) for p in payloads]
