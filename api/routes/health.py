from fastapi import APIRouter, Request
from typing import Any, Dict

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health(request: Request) -> Dict[str, Any]:
    """过滤器状态"""
    bloom_service = request.app.state.container.bloom_service
    return {"status": "ok" if bloom_service.is_ready else "starting", "bloom": bloom_service.stats()}
