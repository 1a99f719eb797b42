"""
backend/matchsync/database.py

Purpose:
    MongoDB connection bootstrap. Only opened when the discovery snapshot is
    persisted in MongoDB (DISCOVERY_STORE_BACKEND=mongo).

Dependencies:
    - motor.motor_asyncio
    - matchsync.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from matchsync.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("matchsync.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=5,
        minPoolSize=0,
    )
    db = client[settings.MONGO_DB]
    logger.info("Connected to MongoDB database %s", settings.MONGO_DB)


async def close_db() -> None:
    global client
    if client:
        client.close()
        client = None
