"""健康检查路由"""

import time

from fastapi import APIRouter, Request

from fruver_service import __version__
from fruver_service.db import check_health, get_supabase

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health(request: Request):
    """服务健康检查"""
    cache = getattr(request.app.state, "cache", None)
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "Fruver DataService",
            "connections": await check_health(),
            "cache": cache.stats() if cache is not None else None,
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(request: Request):
    """Kubernetes readiness probe：服务已装配且数据源客户端可用"""
    services_ready = getattr(request.app.state, "prices", None) is not None
    return {"ready": services_ready and get_supabase() is not None}
