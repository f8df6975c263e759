# backend/services/redis_stream_service.py
import redis.asyncio as redis
import json
import logging
from typing import Dict, Any, List, Optional

logger = logging.getLogger(__name__)

class RedisStreamService:
    """Redis Streams queue decoupling log submission from ingestion"""

    def __init__(
        self,
        redis_url: str,
        stream_name: str = "logs-stream",
        consumer_group: str = "log-ingestion",
        consumer_name: str = "consumer-1"
    ):
        self.redis_url = redis_url
        self.stream_name = stream_name
        self.consumer_group = consumer_group
        self.consumer_name = consumer_name
        self.client: Optional[redis.Redis] = None

    async def connect(self):
        """Establish Redis connection"""
        try:
            self.client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_keepalive=True,
                health_check_interval=30
            )

            # Test connection
            await self.client.ping()
            logger.info(f"✓ Connected to Redis stream {self.stream_name}")

            await self.initialize_consumer_group()

        except Exception as e:
            logger.error(f"✗ Failed to connect to Redis: {e}")
            raise

    async def initialize_consumer_group(self):
        """Create consumer group if it doesn't exist"""
        try:
            await self.client.xgroup_create(
                name=self.stream_name,
                groupname=self.consumer_group,
                id='0',
                mkstream=True
            )
            logger.info(f"✓ Created consumer group: {self.consumer_group}")
        except redis.ResponseError as e:
            if "BUSYGROUP" in str(e):
                logger.info(f"✓ Consumer group already exists: {self.consumer_group}")
            else:
                logger.error(f"✗ Error creating consumer group: {e}")
                raise

    async def produce(self, log_data: Dict[str, Any]) -> str:
        """Add a raw log payload to the stream"""
        try:
            return await self.client.xadd(
                name=self.stream_name,
                fields={'data': json.dumps(log_data)},
                maxlen=100000,
                approximate=True
            )
        except Exception as e:
            logger.error(f"✗ Error producing message: {e}")
            raise

    async def consume(
        self,
        count: int = 10,
        block: int = 5000
    ) -> List[Dict[str, Any]]:
        """Read new messages for this consumer.

        Undecodable messages are returned with data=None so the caller can
        acknowledge and drop them.
        """
        try:
            messages = await self.client.xreadgroup(
                groupname=self.consumer_group,
                consumername=self.consumer_name,
                streams={self.stream_name: '>'},
                count=count,
                block=block
            )
        except Exception as e:
            logger.error(f"✗ Error consuming messages: {e}")
            return []

        if not messages:
            return []

        return [
            self._decode(message_id, fields)
            for _, stream_messages in messages
            for message_id, fields in stream_messages
        ]

    def _decode(self, message_id: str, fields: Dict[str, str]) -> Dict[str, Any]:
        try:
            data = json.loads(fields['data'])
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        except (KeyError, ValueError) as e:
            logger.error(f"✗ Failed to decode message {message_id}: {e}")
            data = None
        return {'message_id': message_id, 'data': data}

    async def acknowledge(self, message_ids: List[str]) -> int:
        """Acknowledge processed messages"""
        if not message_ids:
            return 0
        try:
            return await self.client.xack(
                self.stream_name,
                self.consumer_group,
                *message_ids
            )
        except Exception as e:
            logger.error(f"✗ Error acknowledging messages: {e}")
            return 0

    async def claim_pending_messages(self, min_idle_time: int = 60000) -> List[Dict]:
        """Claim pending messages that have been idle too long"""
        try:
            pending = await self.client.xpending_range(
                name=self.stream_name,
                groupname=self.consumer_group,
                min='-',
                max='+',
                count=100
            )

            idle_message_ids = [
                p['message_id'] for p in pending
                if p['time_since_delivered'] > min_idle_time
            ]
            if not idle_message_ids:
                return []

            claimed = await self.client.xclaim(
                name=self.stream_name,
                groupname=self.consumer_group,
                consumername=self.consumer_name,
                min_idle_time=min_idle_time,
                message_ids=idle_message_ids
            )
            return [self._decode(msg_id, fields) for msg_id, fields in claimed]

        except Exception as e:
            logger.error(f"✗ Error claiming messages: {e}")
            return []

    async def close(self):
        """Close Redis connection"""
        if self.client:
            await self.client.close()
            self.client = None
            logger.info("✓ Closed Redis connection")
