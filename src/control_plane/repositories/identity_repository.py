from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

from motor.motor_asyncio import AsyncIOMotorDatabase

from control_plane.configs.logging_config import get_logger
from control_plane.domain.entities.identity import Membership, Role, User
from control_plane.errors import AppError, ErrorCode
from control_plane.repositories.mongo import from_doc, new_id

log = get_logger(__name__)


class IdentityRepository:
    """Users and their tenant memberships."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._users = db["users"]
        self._memberships = db["memberships"]

    async def ensure_indexes(self) -> None:
        log.info("repo.identity.ensure_indexes start")
        await self._users.create_index([("email", 1)], unique=True)
        # at most one membership per (user, tenant)
        await self._memberships.create_index([("user_id", 1), ("tenant_id", 1)], unique=True)
        await self._memberships.create_index([("user_id", 1), ("role", 1)])
        await self._memberships.create_index([("tenant_id", 1)])
        log.info("repo.identity.ensure_indexes done")

    # ----------------------------
    # Users
    # ----------------------------

    async def find_user_by_email(self, email: str) -> User | None:
        log.info("repo.identity.find_user_by_email")
        doc = from_doc(await self._users.find_one({"email": email.strip().lower()}))
        return User(**doc) if doc else None

    async def get_user(self, user_id: str) -> User | None:
        doc = from_doc(await self._users.find_one({"_id": user_id}))
        return User(**doc) if doc else None

    async def create_user(self, *, email: str, name: str, password_hash: str) -> User:
        now = datetime.now(timezone.utc)
        doc: dict[str, Any] = {
            "_id": new_id(),
            "email": email.strip().lower(),
            "name": name,
            "password_hash": password_hash,
            "status": "ACTIVE",
            "created_at": now,
            "updated_at": now,
        }
        await self._users.insert_one(doc)
        log.info("repo.identity.create_user user_id=%s", doc["_id"])
        return User(**from_doc(doc))

    async def count_users(self) -> int:
        return await self._users.count_documents({})

    # ----------------------------
    # Memberships
    # ----------------------------

    async def add_membership(self, *, user_id: str, tenant_id: str, role: Role) -> Membership:
        if role is Role.PLATFORM_ADMIN:
            raise AppError(
                "PLATFORM_ADMIN is a global role and cannot be bound to a tenant",
                code=ErrorCode.VALIDATION_ERROR,
            )
        doc: dict[str, Any] = {
            "_id": new_id(),
            "user_id": user_id,
            "tenant_id": tenant_id,
            "role": role.value,
            "created_at": datetime.now(timezone.utc),
        }
        await self._memberships.insert_one(doc)
        log.info(
            "repo.identity.add_membership user_id=%s tenant_id=%s role=%s",
            user_id,
            tenant_id,
            role.value,
        )
        return Membership(**from_doc(doc))

    async def list_memberships(
        self, user_id: str, roles: Iterable[Role] | None = None
    ) -> list[Membership]:
        """Memberships of a user in persisted (creation) order."""
        query: dict[str, Any] = {"user_id": user_id}
        if roles is not None:
            query["role"] = {"$in": [r.value for r in roles]}
        cursor = self._memberships.find(query).sort([("created_at", 1), ("_id", 1)])
        docs = await cursor.to_list(length=None)
        return [Membership(**from_doc(d)) for d in docs]

    async def find_membership(
        self,
        user_id: str,
        tenant_id: str | None = None,
        roles: Iterable[Role] | None = None,
    ) -> Membership | None:
        query: dict[str, Any] = {"user_id": user_id}
        if tenant_id is not None:
            query["tenant_id"] = tenant_id
        if roles is not None:
            query["role"] = {"$in": [r.value for r in roles]}
        doc = await self._memberships.find_one(query, sort=[("created_at", 1), ("_id", 1)])
        return Membership(**from_doc(doc)) if doc else None
