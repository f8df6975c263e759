# backend/services/container.py
import logging
from typing import Optional

from config.settings import Settings
from database.connection import Database
from services.alarm_dispatcher import AlarmDispatcher
from services.alarm_service import AlarmService
from services.cache_service import CacheService
from services.log_deletion import LogDeletionCoordinator
from services.log_ingestion import LogIngestionService
from services.log_processor import LogProcessor
from services.log_query import LogQueryService
from services.log_store import LogStore, ProjectStore
from services.notification_channels import NotificationChannels
from services.opensearch_client import SearchIndexClient
from services.redis_stream_service import RedisStreamService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Builds every backing connection and core service once per process"""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        search_index: Optional[SearchIndexClient] = None,
        cache: Optional[CacheService] = None,
        channels: Optional[NotificationChannels] = None,
        stream: Optional[RedisStreamService] = None,
    ):
        self.settings = settings
        self.database = database
        self.search_index = search_index
        self.cache = cache
        self.stream = stream  # set when ingestion is queued through Redis Streams

        self.log_store = LogStore(database)
        self.project_store = ProjectStore(database)
        self.alarms = AlarmService(
            self.project_store,
            AlarmDispatcher(channels or NotificationChannels(timeout=settings.DELIVERY_TIMEOUT_SECONDS)),
            cache=cache,
            debounce_ttl_seconds=settings.ALARM_DEBOUNCE_TTL_SECONDS,
            base_url=settings.APP_BASE_URL,
        )
        self.ingestion = LogIngestionService(
            self.log_store,
            self.project_store,
            LogProcessor(),
            search_index=search_index,
            alarm_service=self.alarms,
        )
        self.queries = LogQueryService(
            self.log_store,
            self.project_store,
            search_index=search_index,
            scan_page_size=settings.SEARCH_SCAN_PAGE_SIZE,
            scan_max_hits=settings.SEARCH_SCAN_MAX_HITS,
        )
        self.deletion = LogDeletionCoordinator(
            self.log_store,
            self.project_store,
            search_index=search_index,
            batch_size=settings.DELETE_BATCH_SIZE,
            mirror_page_size=settings.MIRROR_DELETE_PAGE_SIZE,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceContainer":
        search_index = SearchIndexClient(
            hosts=[{
                'host': settings.OPENSEARCH_HOST,
                'port': settings.OPENSEARCH_PORT
            }],
            http_auth=(settings.OPENSEARCH_USERNAME, settings.OPENSEARCH_PASSWORD) if settings.OPENSEARCH_USERNAME else None,
            use_ssl=settings.OPENSEARCH_USE_SSL,
            index_name=settings.LOGS_INDEX,
            enabled=settings.USE_SEARCH_INDEX,
        )
        cache = CacheService(
            redis_url=settings.REDIS_URL,
            key_prefix=settings.REDIS_KEY_PREFIX,
            enabled=settings.USE_CACHE,
        )
        channels = NotificationChannels(
            mailgun_api_key=settings.MAILGUN_API_KEY,
            mailgun_domain=settings.MAILGUN_DOMAIN,
            sender_email=settings.MAILGUN_SENDER_EMAIL,
            mailgun_api_base=settings.MAILGUN_API_BASE,
            timeout=settings.DELIVERY_TIMEOUT_SECONDS,
        )
        stream = None
        if settings.USE_INGESTION_STREAM:
            stream = RedisStreamService(
                redis_url=settings.REDIS_URL,
                stream_name=settings.STREAM_NAME,
                consumer_group=settings.STREAM_GROUP,
                consumer_name=settings.STREAM_CONSUMER,
            )
        return cls(
            settings,
            Database(settings.DATABASE_URL, echo=settings.DEBUG),
            search_index=search_index,
            cache=cache,
            channels=channels,
            stream=stream,
        )

    async def connect(self):
        """Primary store is required; index and cache degrade to disabled"""
        await self.database.connect()
        await self.database.init_models()

        if self.search_index is not None:
            try:
                await self.search_index.connect()
            except Exception as e:
                logger.warning(f"⚠ Search index unavailable, continuing with primary store only: {e}")
                await self.search_index.close()

        if self.cache is not None:
            try:
                await self.cache.connect()
            except Exception as e:
                logger.warning(f"⚠ Redis connection failed, continuing without cache: {e}")
                await self.cache.close()

        if self.stream is not None:
            # Required once enabled
            await self.stream.connect()

    async def close(self):
        if self.stream is not None:
            await self.stream.close()
        if self.search_index is not None:
            await self.search_index.close()
        if self.cache is not None:
            await self.cache.close()
        await self.database.close()
