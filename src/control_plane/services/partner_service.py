from __future__ import annotations

from typing import Any

from control_plane.auth.models import Principal
from control_plane.configs.logging_config import get_logger
from control_plane.domain.entities.tenancy import (
    Partner,
    PartnerCreateRequest,
    PartnerStatus,
    PartnerUpdateRequest,
)
from control_plane.errors import ForbiddenError
from control_plane.repositories.partner_repository import PartnerRepository
from control_plane.repositories.tenant_repository import TenantRepository
from control_plane.services.scope import TenantScope
from control_plane.utils.time_utils import dt_to_iso

log = get_logger(__name__)


def partner_out(partner: Partner) -> dict[str, Any]:
    return {
        "id": partner.id,
        "name": partner.name,
        "billing_email": partner.billing_email,
        "status": partner.status.value,
        "created_at": dt_to_iso(partner.created_at),
        "updated_at": dt_to_iso(partner.updated_at),
    }


class PartnerService:
    def __init__(
        self,
        partner_repo: PartnerRepository,
        tenant_repo: TenantRepository,
        scope: TenantScope,
    ):
        self._partners = partner_repo
        self._tenants = tenant_repo
        self._scope = scope

    async def list_partners(
        self, principal: Principal, *, page: int, page_size: int, status: str | None
    ) -> tuple[list[dict[str, Any]], int]:
        partner_ids = await self._scope.visible_partner_ids(principal)
        partners, total = await self._partners.list(
            partner_ids=partner_ids,
            status=status,
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        log.info(
            "svc.partner.list user_id=%s returned=%s total=%s", principal.id, len(partners), total
        )
        return [partner_out(p) for p in partners], total

    async def create_partner(self, principal: Principal, req: PartnerCreateRequest) -> dict[str, Any]:
        partner = await self._partners.insert(name=req.name, billing_email=str(req.billing_email))
        log.info("svc.partner.create partner_id=%s created_by=%s", partner.id, principal.id)
        return partner_out(partner)

    async def get_partner(self, principal: Principal, partner_id: str) -> dict[str, Any]:
        await self._ensure_visible(principal, partner_id)
        partner = await self._partners.get(partner_id)
        out = partner_out(partner)
        out["tenant_count"] = await self._tenants.count_by_partner(partner_id)
        return out

    async def update_partner(
        self, principal: Principal, partner_id: str, req: PartnerUpdateRequest
    ) -> dict[str, Any]:
        updates = req.model_dump(exclude_none=True)
        if "billing_email" in updates:
            updates["billing_email"] = str(updates["billing_email"]).lower()
        if not updates:
            return partner_out(await self._partners.get(partner_id))
        partner = await self._partners.update(partner_id, updates)
        log.info(
            "svc.partner.update partner_id=%s keys=%s updated_by=%s",
            partner_id,
            sorted(updates.keys()),
            principal.id,
        )
        return partner_out(partner)

    async def update_status(
        self, principal: Principal, partner_id: str, status: PartnerStatus
    ) -> dict[str, Any]:
        partner = await self._partners.update(partner_id, {"status": status.value})
        log.info(
            "svc.partner.update_status partner_id=%s status=%s updated_by=%s",
            partner_id,
            status.value,
            principal.id,
        )
        return partner_out(partner)

    async def _ensure_visible(self, principal: Principal, partner_id: str) -> None:
        visible = await self._scope.visible_partner_ids(principal)
        if visible is not None and partner_id not in visible:
            log.info("svc.partner.denied user_id=%s partner_id=%s", principal.id, partner_id)
            raise ForbiddenError("access denied to this partner")
