from __future__ import annotations

from math import ceil
from typing import Any

from control_plane.configs.logging_config import get_correlation_id
from control_plane.utils.time_utils import now_ms


def success(data: Any, message: str = "request processed successfully") -> dict[str, Any]:
    return {"status": "success", "message": message, "data": data, "timestamp": now_ms()}


def paginated(
    data: list[Any],
    *,
    total: int,
    page: int,
    page_size: int,
    message: str = "request processed successfully",
) -> dict[str, Any]:
    out = success(data, message=message)
    out["pagination"] = {
        "total_count": total,
        "page": page,
        "page_size": page_size,
        "total_pages": ceil(total / page_size) if page_size else 0,
        "has_next": page * page_size < total,
        "has_prev": page > 1,
    }
    return out


def failure(code: str, message: str) -> dict[str, Any]:
    return {
        "status": "failure",
        "code": code,
        "message": message,
        "correlation_id": get_correlation_id(),
        "timestamp": now_ms(),
    }
