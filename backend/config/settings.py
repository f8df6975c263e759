# backend/config/settings.py
from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "KeepWatch"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "production"
    DEBUG: bool = False
    APP_BASE_URL: str = "http://localhost:3000"  # Deep links in alarm notifications

    # Primary record store
    DATABASE_URL: str = "postgresql://localhost:5432/keepwatch"

    # Search index (OpenSearch)
    USE_SEARCH_INDEX: bool = True
    OPENSEARCH_HOST: str = "localhost"
    OPENSEARCH_PORT: int = 9200
    OPENSEARCH_USERNAME: str = ""
    OPENSEARCH_PASSWORD: str = ""
    OPENSEARCH_USE_SSL: bool = False
    LOGS_INDEX: str = "logs"
    SEARCH_SCAN_PAGE_SIZE: int = 250    # Candidate page size when verifying text hits
    SEARCH_SCAN_MAX_HITS: int = 10000   # Upper bound on candidates scanned per query

    # Cache (Redis)
    USE_CACHE: bool = True
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = ""

    # Alarms
    ALARM_DEBOUNCE_TTL_SECONDS: int = 300

    # Deletion
    DELETE_BATCH_SIZE: int = 500        # Primary store batch-write limit
    MIRROR_DELETE_PAGE_SIZE: int = 250  # Search index page size for mirror cleanup

    # Ingestion stream (Redis Streams)
    STREAM_NAME: str = "logs-stream"
    STREAM_GROUP: str = "log-ingestion"
    STREAM_CONSUMER: str = "consumer-1"
    BATCH_SIZE: int = 50
    USE_INGESTION_STREAM: bool = False  # POST /api/v1/logs enqueues instead of ingesting inline

    # Delivery transports
    MAILGUN_API_KEY: str = ""
    MAILGUN_DOMAIN: str = ""
    MAILGUN_SENDER_EMAIL: str = ""
    MAILGUN_API_BASE: str = "https://api.mailgun.net/v3"
    DELIVERY_TIMEOUT_SECONDS: float = 10.0

    # Pagination
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 1000

    # CORS
    ALLOWED_ORIGINS: list = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = False

@lru_cache()
def get_settings() -> Settings:
    return Settings()
