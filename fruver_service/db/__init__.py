"""
外部连接管理模块
统一管理 Supabase（异步，价格数据源）和 Redis（同步，缓存快照存储）连接
"""

import logging
from typing import Optional

from redis import ConnectionPool, Redis
from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from fruver_service.config import settings

logger = logging.getLogger(__name__)

# ── 全局连接实例 ─────────────────────────────────────────
_supabase_client: Optional[AsyncClient] = None
_redis_client: Optional[Redis] = None
_redis_pool: Optional[ConnectionPool] = None


async def init_supabase() -> bool:
    """初始化 Supabase 异步客户端，返回是否成功"""
    global _supabase_client
    if not settings.SUPABASE_ENABLED:
        logger.info("Supabase 未启用，跳过初始化")
        return False
    if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
        logger.warning("⚠️ SUPABASE_URL / SUPABASE_KEY 未配置，数据接口将不可用")
        return False
    try:
        # 只读服务：不持久化会话、不自动刷新 token
        _supabase_client = await acreate_client(
            settings.SUPABASE_URL,
            settings.SUPABASE_KEY,
            options=AsyncClientOptions(persist_session=False, auto_refresh_token=False),
        )
        logger.info(f"✅ Supabase 客户端就绪: {settings.SUPABASE_URL}")
        return True
    except Exception as exc:
        logger.warning(f"⚠️ Supabase 初始化失败: {exc}")
        _supabase_client = None
        return False


def init_redis() -> bool:
    """初始化 Redis 同步连接，返回是否成功"""
    global _redis_client, _redis_pool
    if not settings.REDIS_ENABLED:
        logger.info("Redis 未启用，跳过初始化")
        return False
    try:
        _redis_pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=10,
        )
        _redis_client = Redis(connection_pool=_redis_pool)
        _redis_client.ping()
        logger.info(f"✅ Redis 连接成功: {settings.REDIS_HOST}:{settings.REDIS_PORT}")
        return True
    except Exception as exc:
        logger.warning(f"⚠️ Redis 连接失败（缓存快照将降级为文件存储）: {exc}")
        _redis_client = None
        _redis_pool = None
        return False


async def close_connections():
    """关闭所有外部连接"""
    global _supabase_client, _redis_client, _redis_pool
    _supabase_client = None
    if _redis_client:
        _redis_client.close()
        _redis_client = None
    if _redis_pool:
        _redis_pool.disconnect()
        _redis_pool = None
        logger.info("Redis 连接已关闭")


def get_supabase() -> Optional[AsyncClient]:
    """获取 Supabase 客户端（可能为 None）"""
    return _supabase_client


def get_redis() -> Optional[Redis]:
    """获取 Redis 客户端（可能为 None）"""
    return _redis_client


async def check_health() -> dict:
    """检查外部连接健康状态"""
    result = {
        "supabase": {"status": "disabled"},
        "redis": {"status": "disabled"},
    }
    if _supabase_client:
        result["supabase"] = {"status": "configured", "url": settings.SUPABASE_URL}
    elif settings.SUPABASE_ENABLED:
        result["supabase"] = {"status": "disconnected"}

    if _redis_client:
        try:
            _redis_client.ping()
            result["redis"] = {"status": "healthy", "host": settings.REDIS_HOST}
        except Exception as exc:
            result["redis"] = {"status": "unhealthy", "error": str(exc)}
    elif settings.REDIS_ENABLED:
        result["redis"] = {"status": "disconnected"}

    return result
