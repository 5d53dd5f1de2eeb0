from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from control_plane.configs.logging_config import get_logger
from control_plane.domain.entities.tenancy import Domain, DomainStatus
from control_plane.errors import NotFoundError
from control_plane.repositories.mongo import from_doc, new_id

log = get_logger(__name__)


class DomainRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._col = db["domains"]

    async def ensure_indexes(self) -> None:
        log.info("repo.domain.ensure_indexes start")
        await self._col.create_index([("hostname", 1)], unique=True)
        await self._col.create_index([("tenant_id", 1), ("created_at", 1)])
        log.info("repo.domain.ensure_indexes done")

    async def insert(self, *, tenant_id: str, hostname: str) -> Domain:
        now = datetime.now(timezone.utc)
        doc: dict[str, Any] = {
            "_id": new_id(),
            "tenant_id": tenant_id,
            "hostname": hostname,
            "status": DomainStatus.PENDING.value,
            "verified_at": None,
            "last_verified_at": None,
            "verification_errors": [],
            "redirect_rules": None,
            "ssl_config": None,
            "created_at": now,
            "updated_at": now,
        }
        await self._col.insert_one(doc)
        log.info("repo.domain.insert domain_id=%s tenant_id=%s", doc["_id"], tenant_id)
        return Domain(**from_doc(doc))

    async def get(self, domain_id: str) -> Domain:
        doc = from_doc(await self._col.find_one({"_id": domain_id}))
        if not doc:
            log.info("repo.domain.get not_found domain_id=%s", domain_id)
            raise NotFoundError("domain not found")
        return Domain(**doc)

    async def find_by_hostname(self, hostname: str) -> Domain | None:
        doc = from_doc(await self._col.find_one({"hostname": hostname.lower()}))
        return Domain(**doc) if doc else None

    async def list(
        self,
        *,
        tenant_ids: list[str] | None,
        status: str | None,
        hostname_contains: str | None,
        skip: int,
        limit: int,
    ) -> tuple[list[Domain], int]:
        query: dict[str, Any] = {}
        if tenant_ids is not None:
            query["tenant_id"] = {"$in": tenant_ids}
        if status:
            query["status"] = status
        if hostname_contains:
            query["hostname"] = {"$regex": re.escape(hostname_contains.lower())}
        log.info(
            "repo.domain.list skip=%s limit=%s query_keys=%s", skip, limit, sorted(query.keys())
        )
        cursor = self._col.find(query).sort([("created_at", -1)]).skip(skip).limit(limit)
        items = await cursor.to_list(length=limit)
        total = await self._col.count_documents(query)
        return [Domain(**from_doc(d)) for d in items], total

    async def list_for_tenant(self, tenant_id: str) -> list[Domain]:
        cursor = self._col.find({"tenant_id": tenant_id}).sort([("created_at", 1)])
        return [Domain(**from_doc(d)) for d in await cursor.to_list(length=None)]

    async def update(self, domain_id: str, updates: dict[str, Any]) -> Domain:
        log.info("repo.domain.update domain_id=%s keys=%s", domain_id, sorted(updates.keys()))
        updates = {**updates, "updated_at": datetime.now(timezone.utc)}
        doc = await self._col.find_one_and_update(
            {"_id": domain_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise NotFoundError("domain not found")
        return Domain(**from_doc(doc))

    async def count_by_tenant(self, tenant_id: str) -> int:
        return await self._col.count_documents({"tenant_id": tenant_id})

    async def count(self, *, status: str | None = None) -> int:
        return await self._col.count_documents({"status": status} if status else {})

    async def recent(self, limit: int) -> list[Domain]:
        cursor = self._col.find({}).sort([("created_at", -1)]).limit(limit)
        return [Domain(**from_doc(d)) for d in await cursor.to_list(length=limit)]
