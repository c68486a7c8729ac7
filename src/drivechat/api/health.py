"""Provider health reporting."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query

from drivechat.llm.fallback import ProviderFallbackExecutor

from .dependencies import get_fallback_executor

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(
    probe: bool = Query(False),
    executor: ProviderFallbackExecutor = Depends(get_fallback_executor),
) -> dict:
    """Report breaker state per provider; ``probe=true`` also pings each one."""

    probed = await executor.probe() if probe else {}
    providers = executor.status()
    for entry in providers:
        if entry["name"] in probed:
            entry["healthy"] = probed[entry["name"]]

    available = [entry["name"] for entry in providers if entry["available"]]
    return {
        "status": "healthy" if available else "degraded",
        "providers": providers,
        "primaryProvider": available[0] if available else None,
        "fallbackAvailable": len(available) > 1,
        "totalProviders": len(providers),
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
