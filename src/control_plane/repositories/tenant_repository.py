from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from control_plane.configs.logging_config import get_logger
from control_plane.domain.entities.tenancy import Tenant, TenantStatus, TenantType
from control_plane.errors import NotFoundError
from control_plane.repositories.mongo import from_doc

log = get_logger(__name__)


class TenantRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._col = db["tenants"]

    async def ensure_indexes(self) -> None:
        log.info("repo.tenant.ensure_indexes start")
        await self._col.create_index([("partner_id", 1), ("created_at", -1)])
        await self._col.create_index([("status", 1)])
        log.info("repo.tenant.ensure_indexes done")

    async def insert(
        self, *, tenant_id: str, partner_id: str, name: str, tenant_type: TenantType
    ) -> Tenant:
        now = datetime.now(timezone.utc)
        doc: dict[str, Any] = {
            "_id": tenant_id,
            "partner_id": partner_id,
            "name": name,
            "tenant_type": tenant_type.value,
            "status": TenantStatus.ACTIVE.value,
            "created_at": now,
            "updated_at": now,
        }
        await self._col.insert_one(doc)
        log.info("repo.tenant.insert tenant_id=%s partner_id=%s", tenant_id, partner_id)
        return Tenant(**from_doc(doc))

    async def find(self, tenant_id: str) -> Tenant | None:
        doc = from_doc(await self._col.find_one({"_id": tenant_id}))
        return Tenant(**doc) if doc else None

    async def get(self, tenant_id: str) -> Tenant:
        tenant = await self.find(tenant_id)
        if tenant is None:
            log.info("repo.tenant.get not_found tenant_id=%s", tenant_id)
            raise NotFoundError("tenant not found")
        return tenant

    async def list(
        self,
        *,
        tenant_ids: list[str] | None,
        partner_id: str | None,
        status: str | None,
        tenant_type: str | None,
        skip: int,
        limit: int,
    ) -> tuple[list[Tenant], int]:
        query: dict[str, Any] = {}
        if tenant_ids is not None:
            query["_id"] = {"$in": tenant_ids}
        if partner_id:
            query["partner_id"] = partner_id
        if status:
            query["status"] = status
        if tenant_type:
            query["tenant_type"] = tenant_type
        log.info(
            "repo.tenant.list skip=%s limit=%s query_keys=%s", skip, limit, sorted(query.keys())
        )
        cursor = self._col.find(query).sort([("created_at", -1)]).skip(skip).limit(limit)
        items = await cursor.to_list(length=limit)
        total = await self._col.count_documents(query)
        return [Tenant(**from_doc(d)) for d in items], total

    async def update_status(self, tenant_id: str, status: TenantStatus) -> Tenant:
        log.info("repo.tenant.update_status tenant_id=%s status=%s", tenant_id, status.value)
        doc = await self._col.find_one_and_update(
            {"_id": tenant_id},
            {"$set": {"status": status.value, "updated_at": datetime.now(timezone.utc)}},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise NotFoundError("tenant not found")
        return Tenant(**from_doc(doc))

    async def count_by_partner(self, partner_id: str) -> int:
        return await self._col.count_documents({"partner_id": partner_id})

    async def partner_tenant_ids(self, partner_id: str) -> list[str]:
        cursor = self._col.find({"partner_id": partner_id}, projection={"_id": 1})
        return [str(d["_id"]) for d in await cursor.to_list(length=None)]

    async def partner_of(self, tenant_id: str) -> str | None:
        doc = await self._col.find_one({"_id": tenant_id}, projection={"partner_id": 1})
        return doc.get("partner_id") if doc else None

    async def partner_ids_of(self, tenant_ids: list[str]) -> list[str]:
        return await self._col.distinct("partner_id", {"_id": {"$in": tenant_ids}})

    async def count(
        self,
        *,
        status: str | None = None,
        created_since: datetime | None = None,
        updated_since: datetime | None = None,
    ) -> int:
        query: dict[str, Any] = {}
        if status:
            query["status"] = status
        if created_since is not None:
            query["created_at"] = {"$gte": created_since}
        if updated_since is not None:
            query["updated_at"] = {"$gte": updated_since}
        return await self._col.count_documents(query)

    async def recent(self, limit: int) -> list[Tenant]:
        cursor = self._col.find({}).sort([("created_at", -1)]).limit(limit)
        return [Tenant(**from_doc(d)) for d in await cursor.to_list(length=limit)]

    async def find_many(self, tenant_ids: list[str]) -> dict[str, Tenant]:
        cursor = self._col.find({"_id": {"$in": tenant_ids}})
        tenants = [Tenant(**from_doc(d)) for d in await cursor.to_list(length=None)]
        return {t.id: t for t in tenants}
