"""
缓存管理路由
GET  /api/cache/stats        - 缓存统计
POST /api/cache/invalidate   - 按键前缀失效
POST /api/cache/clear        - 清空全部缓存（含持久化快照）
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from fruver_service.dependencies import get_cache
from fruver_service.layers.cache import CacheLayer
from fruver_service.models.response import ApiResponse

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])


class InvalidateRequest(BaseModel):
    prefix: str = Field(..., min_length=1, description="缓存键前缀，如 producto:papa criolla")


@router.get("/stats", response_model=ApiResponse)
async def cache_stats(cache: CacheLayer = Depends(get_cache)):
    """缓存统计（条目数、进行中的加载、存储后端）"""
    return ApiResponse.ok(data=cache.stats())


@router.post("/invalidate", response_model=ApiResponse)
async def invalidate_cache(body: InvalidateRequest, cache: CacheLayer = Depends(get_cache)):
    removed = cache.invalidate(body.prefix)
    return ApiResponse.ok(
        data={"prefix": body.prefix, "removed": removed},
        message=f"缓存已失效: {body.prefix}*",
    )


@router.post("/clear", response_model=ApiResponse)
async def clear_cache(cache: CacheLayer = Depends(get_cache)):
    cache.clear()
    return ApiResponse.ok(message="缓存已全部清理")
