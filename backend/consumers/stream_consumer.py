# backend/consumers/stream_consumer.py
import asyncio
import signal
import sys
import logging
from typing import Dict, Optional
from datetime import datetime, timezone

from config.settings import get_settings
from services.container import ServiceContainer
from services.errors import InputError, NotFoundError
from services.redis_stream_service import RedisStreamService

logger = logging.getLogger(__name__)


class StreamConsumerWorker:
    """Background worker that ingests raw logs from Redis Streams"""

    def __init__(self, container: ServiceContainer, stream_service: RedisStreamService, batch_size: int = 50):
        self.running = False
        self.container = container
        self.stream_service = stream_service
        self.batch_size = batch_size

        # Statistics
        self.stats = {
            'processed': 0,
            'dropped': 0,
            'errors': 0,
            'started_at': None
        }

    async def initialize(self):
        """Initialize all services"""
        logger.info("🚀 Initializing log ingestion worker...")

        try:
            await self.container.connect()
            await self.stream_service.connect()

            self.stats['started_at'] = datetime.now(timezone.utc)
            logger.info("✅ All services initialized successfully")

        except Exception as e:
            logger.error(f"❌ Failed to initialize services: {e}")
            raise

    async def start(self):
        """Start consuming logs"""
        self.running = True
        logger.info(f"🚦 Listening for logs on {self.stream_service.stream_name}...")

        while self.running:
            try:
                messages = await self.stream_service.consume(
                    count=self.batch_size,
                    block=1000  # Block for 1 second
                )

                if not messages:
                    # Check for pending messages that need reprocessing
                    messages = await self.stream_service.claim_pending_messages(min_idle_time=60000)
                    if messages:
                        logger.info(f"🔄 Reclaiming {len(messages)} pending messages")

                for message in messages:
                    await self.handle_message(message)

                # Small delay to prevent tight loop
                await asyncio.sleep(0.1)

            except Exception as e:
                logger.error(f"❌ Error in consumer loop: {e}")
                await asyncio.sleep(5)  # Wait before retrying

    async def handle_message(self, message: Dict) -> bool:
        """Ingest one message; ack on success or on a payload that can never succeed"""
        message_id = message['message_id']
        raw_log: Optional[Dict] = message.get('data')

        if not isinstance(raw_log, dict):
            logger.error(f"❌ Invalid payload in message {message_id}; dropping")
            self.stats['dropped'] += 1
            await self.stream_service.acknowledge([message_id])
            return False

        try:
            await self.container.ingestion.store_log_message(raw_log)
        except (InputError, NotFoundError) as e:
            logger.error(f"❌ Rejected message {message_id}: {e.message}")
            self.stats['dropped'] += 1
            await self.stream_service.acknowledge([message_id])
            return False
        except Exception as e:
            # Left pending; reclaimed and retried later
            logger.error(f"❌ Error processing message {message_id}: {e}")
            self.stats['errors'] += 1
            return False

        await self.stream_service.acknowledge([message_id])
        self.stats['processed'] += 1
        return True

    def stop(self):
        """Stop the consumer"""
        logger.info("🛑 Stopping consumer...")
        self.running = False

    async def shutdown(self):
        """Cleanup and shutdown"""
        logger.info("🔌 Shutting down consumer...")

        self.stop()

        await self.stream_service.close()
        await self.container.close()

        runtime = datetime.now(timezone.utc) - self.stats['started_at'] if self.stats['started_at'] else 'N/A'
        logger.info(
            f"📊 Final Statistics: processed={self.stats['processed']} "
            f"dropped={self.stats['dropped']} errors={self.stats['errors']} runtime={runtime}"
        )


# Main execution
async def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    settings = get_settings()

    worker = StreamConsumerWorker(
        ServiceContainer.from_settings(settings),
        RedisStreamService(
            redis_url=settings.REDIS_URL,
            stream_name=settings.STREAM_NAME,
            consumer_group=settings.STREAM_GROUP,
            consumer_name=settings.STREAM_CONSUMER
        ),
        batch_size=settings.BATCH_SIZE,
    )

    # Setup signal handlers
    def signal_handler(signum, frame):
        logger.info(f"📡 Received signal {signum}")
        worker.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await worker.initialize()
        await worker.start()
    except Exception as e:
        logger.error(f"❌ Worker failed: {e}")
        await worker.shutdown()
        sys.exit(1)

    await worker.shutdown()

if __name__ == "__main__":
    asyncio.run(main())
