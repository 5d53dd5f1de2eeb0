from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from control_plane.configs.logging_config import get_logger
from control_plane.repositories.mongo import from_doc, new_id

log = get_logger(__name__)


class UsageRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._col = db["usage_counters"]

    async def ensure_indexes(self) -> None:
        log.info("repo.usage.ensure_indexes start")
        await self._col.create_index(
            [
                ("tenant_id", 1),
                ("product_key", 1),
                ("environment", 1),
                ("metric_key", 1),
                ("period_start", 1),
            ],
            unique=True,
            name="uniq_usage_counter",
        )
        log.info("repo.usage.ensure_indexes done")

    async def increment(
        self,
        *,
        tenant_id: str,
        product_key: str,
        environment: str,
        metric_key: str,
        period_start: datetime,
        value: int,
    ) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        key = {
            "tenant_id": tenant_id,
            "product_key": product_key,
            "environment": environment,
            "metric_key": metric_key,
            "period_start": period_start,
        }
        doc = await self._col.find_one_and_update(
            key,
            {
                "$inc": {"value": value},
                "$set": {"updated_at": now},
                "$setOnInsert": {"_id": new_id(), "created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        log.info(
            "repo.usage.increment tenant_id=%s product_key=%s metric_key=%s value=%s",
            tenant_id,
            product_key,
            metric_key,
            value,
        )
        return from_doc(doc)

    async def list_counters(
        self,
        *,
        tenant_id: str,
        period_start: datetime,
        period_end: datetime,
        product_key: str | None = None,
        environment: str | None = None,
    ) -> list[dict[str, Any]]:
        query: dict[str, Any] = {
            "tenant_id": tenant_id,
            "period_start": {"$gte": period_start, "$lte": period_end},
        }
        if product_key:
            query["product_key"] = product_key
        if environment:
            query["environment"] = environment
        cursor = self._col.find(query).sort(
            [("product_key", 1), ("metric_key", 1), ("period_start", -1)]
        )
        return [from_doc(d) for d in await cursor.to_list(length=None)]

    async def count(self) -> int:
        return await self._col.count_documents({})

    async def list_all_counters(
        self,
        *,
        period_start: datetime,
        period_end: datetime,
        product_key: str | None = None,
        environment: str | None = None,
    ) -> list[dict[str, Any]]:
        """Counters of every tenant in the period, for platform-wide reporting."""
        query: dict[str, Any] = {"period_start": {"$gte": period_start, "$lte": period_end}}
        if product_key:
            query["product_key"] = product_key
        if environment:
            query["environment"] = environment
        log.info("repo.usage.list_all_counters query_keys=%s", sorted(query.keys()))
        cursor = self._col.find(query)
        return [from_doc(d) for d in await cursor.to_list(length=None)]
