# backend/services/opensearch_client.py
from opensearchpy import AsyncOpenSearch, NotFoundError, TransportError, ConnectionError as OpenSearchConnectionError
from typing import List, Dict, Any, Optional
import logging

from services.errors import IndexUnavailableError, MirrorInconsistencyError
from services.phrase_filter import get_details_text, get_stack_trace_text

logger = logging.getLogger(__name__)

LOGS_MAPPING = {
    "settings": {
        "number_of_shards": 1,
        "number_of_replicas": 1,
        "refresh_interval": "1s",
    },
    "mappings": {
        "properties": {
            "id": {"type": "keyword"},
            "project_id": {"type": "keyword"},
            "log_type": {"type": "keyword"},
            "level": {"type": "keyword"},
            "environment": {"type": "keyword"},
            "hostname": {"type": "keyword"},
            "message": {"type": "text"},
            "raw_stack_trace": {"type": "text"},
            "stack_trace_text": {"type": "text"},
            "detail_string": {"type": "text"},
            "stack_trace": {"type": "object", "enabled": False},
            "details": {"type": "object", "enabled": False},
            "request": {"type": "object", "enabled": False},
            "timestamp_ms": {"type": "long"},
            "created_at": {"type": "date"},
        }
    },
}


def build_document(record: Dict[str, Any]) -> Dict[str, Any]:
    """Index document for a stored log, carrying the derived text surfaces"""
    document = {
        key: record.get(key)
        for key in (
            "id", "project_id", "log_type", "level", "environment", "hostname",
            "message", "stack_trace", "raw_stack_trace", "details", "request",
            "timestamp_ms", "created_at",
        )
    }
    document["stack_trace_text"] = get_stack_trace_text(record)
    document["detail_string"] = get_details_text(record)
    return document


class SearchIndexClient:
    """Async OpenSearch client for the derived log search index"""

    def __init__(
        self,
        hosts: List[Dict],
        http_auth=None,
        use_ssl: bool = False,
        index_name: str = "logs",
        enabled: bool = True,
    ):
        self.hosts = hosts
        self.http_auth = http_auth
        self.use_ssl = use_ssl
        self.index_name = index_name
        self.enabled = enabled
        self.client: Optional[AsyncOpenSearch] = None

    @property
    def is_available(self) -> bool:
        return self.enabled and self.client is not None

    async def connect(self):
        """Connect to OpenSearch"""
        if not self.enabled:
            logger.info("⚠ Search index disabled; queries use the primary store")
            return

        try:
            self.client = AsyncOpenSearch(
                hosts=self.hosts,
                http_auth=self.http_auth,
                use_ssl=self.use_ssl,
                verify_certs=False,
                ssl_show_warn=False,
                timeout=30,
                max_retries=3,
                retry_on_timeout=True
            )

            # Test connection
            info = await self.client.info()
            logger.info(f"✓ Connected to OpenSearch: {info['version']['number']}")

            await self.ensure_index()

        except Exception as e:
            logger.error(f"✗ Failed to connect to OpenSearch: {e}")
            raise

    def _require_client(self) -> AsyncOpenSearch:
        if not self.is_available:
            raise IndexUnavailableError("Search index is disabled or not connected")
        return self.client

    async def ensure_index(self):
        """Create the logs index if it is not yet provisioned"""
        client = self._require_client()

        if await client.indices.exists(index=self.index_name):
            logger.info(f"✓ Index {self.index_name} already exists")
            return

        await client.indices.create(index=self.index_name, body=LOGS_MAPPING)
        logger.info(f"✓ Index {self.index_name} created")

    async def index_document(self, record: Dict[str, Any]):
        """Mirror one stored log into the index"""
        client = self._require_client()
        document = build_document(record)

        try:
            await client.index(index=self.index_name, id=document["id"], body=document)
        except (TransportError, OpenSearchConnectionError) as e:
            raise MirrorInconsistencyError(f"Failed to index log {document['id']}", detail=str(e)) from e

    async def search(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Run a search; returns total found and the hit documents in index order"""
        client = self._require_client()

        try:
            response = await client.search(index=self.index_name, body=body)
        except (TransportError, OpenSearchConnectionError) as e:
            raise IndexUnavailableError("Search index query failed", detail=str(e)) from e

        return {
            "total": response["hits"]["total"]["value"],
            "hits": [hit["_source"] for hit in response["hits"]["hits"]],
        }

    async def delete_document(self, document_id: str) -> bool:
        """Delete one document; False when it was already gone"""
        client = self._require_client()

        try:
            await client.delete(index=self.index_name, id=document_id)
        except NotFoundError:
            return False
        return True

    async def close(self):
        """Close connection"""
        if self.client:
            await self.client.close()
            self.client = None
            logger.info("✓ Closed OpenSearch connection")
