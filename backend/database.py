from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
import logging

import config

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            # tz_aware so stored send_at values compare cleanly with clock.now()
            self.client = AsyncIOMotorClient(config.MONGO_URL, tz_aware=True)
            self.db = self.client[config.DB_NAME]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {config.DB_NAME}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for the intake, drip and booking collections."""
        try:
            # Leads: email is a lookup key, not unique (people resubmit)
            await self.db.leads.create_index("id", unique=True)
            await self.db.leads.create_index("email")
            await self.db.leads.create_index([("created_at", DESCENDING)])
            await self.db.leads.create_index([("score", DESCENDING)])

            # Interactions - append-only timeline per lead
            await self.db.interactions.create_index([("lead_id", ASCENDING), ("at", ASCENDING)])
            await self.db.interactions.create_index("kind")

            # Enrollments - supersession / pause lookups by email + pathway
            await self.db.enrollments.create_index("id", unique=True)
            await self.db.enrollments.create_index(
                [("email", ASCENDING), ("pathway_name", ASCENDING), ("status", ASCENDING)]
            )
            await self.db.enrollments.create_index("lead_id")

            # Scheduled messages - the dispatcher scan is (status, send_at)
            await self.db.scheduled_messages.create_index("id", unique=True)
            await self.db.scheduled_messages.create_index([("status", ASCENDING), ("send_at", ASCENDING)])
            await self.db.scheduled_messages.create_index([("enrollment_id", ASCENDING), ("step_index", ASCENDING)])
            await self.db.scheduled_messages.create_index("email")

            # Bookings - webhook idempotency by event_key
            await self.db.bookings.create_index([("email", ASCENDING), ("status", ASCENDING)])
            try:
                await self.db.bookings.create_index("event_key", unique=True, sparse=True)
            except Exception as e:
                logger.debug(f"bookings.event_key index exists with other options: {e}")
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")

# Global database instance
database = Database()

