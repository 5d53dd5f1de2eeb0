from __future__ import annotations

import uuid
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from control_plane.configs.settings import Settings
from control_plane.configs.logging_config import get_logger

log = get_logger(__name__)


def get_mongo_client(settings: Settings) -> AsyncIOMotorClient:
    log.info("mongo.client.create db=%s", settings.mongo_db)
    # tz_aware keeps datetimes read back comparable with utc_now()
    return AsyncIOMotorClient(settings.mongo_uri, tz_aware=True)


def get_mongo_db(client: AsyncIOMotorClient, settings: Settings) -> AsyncIOMotorDatabase:
    log.info("mongo.db.select db=%s", settings.mongo_db)
    return client[settings.mongo_db]


async def ping_mongo(db: AsyncIOMotorDatabase) -> None:
    await db.command("ping")


def new_id() -> str:
    return uuid.uuid4().hex


def from_doc(doc: dict[str, Any] | None) -> dict[str, Any] | None:
    """Rename Mongo's `_id` to `id`; our ids are plain strings."""
    if doc is None:
        return None
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc
