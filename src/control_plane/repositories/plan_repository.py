from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from control_plane.configs.logging_config import get_logger
from control_plane.domain.entities.tenancy import Plan, TenantPlan
from control_plane.errors import NotFoundError
from control_plane.repositories.mongo import from_doc, new_id

log = get_logger(__name__)


class PlanRepository:
    """Plans and their time-bounded assignment to tenants."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._plans = db["plans"]
        self._assignments = db["tenant_plans"]

    async def ensure_indexes(self) -> None:
        log.info("repo.plan.ensure_indexes start")
        await self._plans.create_index([("key", 1)], unique=True)
        await self._assignments.create_index([("tenant_id", 1), ("effective_from", -1)])
        log.info("repo.plan.ensure_indexes done")

    async def insert(
        self, *, key: str, name: str, description: str | None, limits: dict[str, int]
    ) -> Plan:
        now = datetime.now(timezone.utc)
        doc: dict[str, Any] = {
            "_id": new_id(),
            "key": key,
            "name": name,
            "description": description,
            "limits": limits,
            "created_at": now,
            "updated_at": now,
        }
        await self._plans.insert_one(doc)
        log.info("repo.plan.insert plan_id=%s key=%s", doc["_id"], key)
        return Plan(**from_doc(doc))

    async def get(self, plan_id: str) -> Plan:
        doc = from_doc(await self._plans.find_one({"_id": plan_id}))
        if not doc:
            log.info("repo.plan.get not_found plan_id=%s", plan_id)
            raise NotFoundError("plan not found")
        return Plan(**doc)

    async def list(self, *, skip: int, limit: int) -> tuple[list[Plan], int]:
        cursor = self._plans.find({}).sort([("key", 1)]).skip(skip).limit(limit)
        items = await cursor.to_list(length=limit)
        total = await self._plans.count_documents({})
        return [Plan(**from_doc(d)) for d in items], total

    async def update(self, plan_id: str, updates: dict[str, Any]) -> Plan:
        log.info("repo.plan.update plan_id=%s keys=%s", plan_id, sorted(updates.keys()))
        updates = {**updates, "updated_at": datetime.now(timezone.utc)}
        doc = await self._plans.find_one_and_update(
            {"_id": plan_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise NotFoundError("plan not found")
        return Plan(**from_doc(doc))

    async def attach(self, *, tenant_id: str, plan_id: str, effective_from: datetime) -> TenantPlan:
        doc: dict[str, Any] = {
            "_id": new_id(),
            "tenant_id": tenant_id,
            "plan_id": plan_id,
            "effective_from": effective_from,
            "effective_to": None,
            "created_at": datetime.now(timezone.utc),
        }
        # the new row exists before older open rows are closed
        await self._assignments.insert_one(doc)
        closed = await self._assignments.update_many(
            {"tenant_id": tenant_id, "effective_to": None, "_id": {"$ne": doc["_id"]}},
            {"$set": {"effective_to": effective_from}},
        )
        log.info(
            "repo.plan.attach tenant_id=%s plan_id=%s closed=%s",
            tenant_id,
            plan_id,
            closed.modified_count,
        )
        return TenantPlan(**from_doc(doc))

    async def current_for_tenant(
        self, tenant_id: str, at: datetime
    ) -> tuple[TenantPlan, Plan] | None:
        doc = await self._assignments.find_one(
            {
                "tenant_id": tenant_id,
                "effective_from": {"$lte": at},
                "$or": [{"effective_to": None}, {"effective_to": {"$gte": at}}],
            },
            sort=[("effective_from", -1)],
        )
        if not doc:
            return None
        assignment = TenantPlan(**from_doc(doc))
        return assignment, await self.get(assignment.plan_id)
