from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from control_plane.configs.logging_config import get_logger
from control_plane.domain.entities.tenancy import Partner, PartnerStatus
from control_plane.errors import NotFoundError
from control_plane.repositories.mongo import from_doc, new_id

log = get_logger(__name__)


class PartnerRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._col = db["partners"]

    async def ensure_indexes(self) -> None:
        log.info("repo.partner.ensure_indexes start")
        await self._col.create_index([("billing_email", 1)], unique=True)
        await self._col.create_index([("status", 1), ("created_at", -1)])
        log.info("repo.partner.ensure_indexes done")

    async def insert(self, *, name: str, billing_email: str) -> Partner:
        now = datetime.now(timezone.utc)
        doc: dict[str, Any] = {
            "_id": new_id(),
            "name": name,
            "billing_email": billing_email.strip().lower(),
            "status": PartnerStatus.PENDING.value,
            "created_at": now,
            "updated_at": now,
        }
        await self._col.insert_one(doc)
        log.info("repo.partner.insert partner_id=%s", doc["_id"])
        return Partner(**from_doc(doc))

    async def find(self, partner_id: str) -> Partner | None:
        doc = from_doc(await self._col.find_one({"_id": partner_id}))
        return Partner(**doc) if doc else None

    async def get(self, partner_id: str) -> Partner:
        partner = await self.find(partner_id)
        if partner is None:
            log.info("repo.partner.get not_found partner_id=%s", partner_id)
            raise NotFoundError("partner not found")
        return partner

    async def list(
        self,
        *,
        partner_ids: list[str] | None,
        status: str | None,
        skip: int,
        limit: int,
    ) -> tuple[list[Partner], int]:
        query: dict[str, Any] = {}
        if partner_ids is not None:
            query["_id"] = {"$in": partner_ids}
        if status:
            query["status"] = status
        log.info(
            "repo.partner.list skip=%s limit=%s query_keys=%s", skip, limit, sorted(query.keys())
        )
        cursor = self._col.find(query).sort([("created_at", -1)]).skip(skip).limit(limit)
        items = await cursor.to_list(length=limit)
        total = await self._col.count_documents(query)
        return [Partner(**from_doc(d)) for d in items], total

    async def update(self, partner_id: str, updates: dict[str, Any]) -> Partner:
        log.info(
            "repo.partner.update partner_id=%s keys=%s", partner_id, sorted(updates.keys())
        )
        updates = {**updates, "updated_at": datetime.now(timezone.utc)}
        doc = await self._col.find_one_and_update(
            {"_id": partner_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise NotFoundError("partner not found")
        return Partner(**from_doc(doc))

    async def count(self, *, status: str | None = None) -> int:
        return await self._col.count_documents({"status": status} if status else {})

    async def recent(self, limit: int) -> list[Partner]:
        cursor = self._col.find({}).sort([("created_at", -1)]).limit(limit)
        return [Partner(**from_doc(d)) for d in await cursor.to_list(length=limit)]

    async def names_of(self, partner_ids: list[str]) -> dict[str, str]:
        cursor = self._col.find({"_id": {"$in": partner_ids}}, projection={"name": 1})
        return {str(d["_id"]): d["name"] for d in await cursor.to_list(length=None)}
