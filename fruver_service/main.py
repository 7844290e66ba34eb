"""
Fruver 农产品价格数据服务
独立 FastAPI 应用程序入口

启动方式:
    uvicorn fruver_service.main:app --host 0.0.0.0 --port 8002
    python -m fruver_service.main
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError

from fruver_service import __version__
from fruver_service.config import settings
from fruver_service.db import close_connections, get_redis, get_supabase, init_redis, init_supabase
from fruver_service.layers.acquisition import AcquisitionLayer
from fruver_service.layers.cache import CacheLayer
from fruver_service.layers.storage import build_storage
from fruver_service.models.response import ApiResponse
from fruver_service.routers import basket, cache, health, products
from fruver_service.services.market_service import MarketService
from fruver_service.services.price_service import PriceDataService

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动/关闭生命周期钩子"""
    logger.info("=" * 60)
    logger.info(f"🚀 Fruver DataService v{__version__} 启动中")
    logger.info(f"   Supabase  : {settings.SUPABASE_URL or '(未配置)'}")
    logger.info(f"   价格表    : {settings.PRICE_TABLE}")
    logger.info(f"   缓存后端  : {settings.CACHE_BACKEND}（TTL {settings.CACHE_TTL}s）")
    logger.info("=" * 60)

    # 外部连接失败不阻断启动，降级运行
    supabase_ok = await init_supabase()
    redis_ok = init_redis()
    if not supabase_ok:
        logger.warning("⚠️ 价格数据源不可用，数据接口将返回错误")

    storage = build_storage(redis_client=get_redis() if redis_ok else None)
    cache_layer = CacheLayer(storage)
    restored = cache_layer.open()
    logger.info(f"✅ 缓存就绪: {storage.describe()}，恢复 {restored} 条")

    prices = PriceDataService(cache_layer, AcquisitionLayer(get_supabase()))
    app.state.cache = cache_layer
    app.state.prices = prices
    app.state.market = MarketService(prices)

    yield

    logger.info("🔄 数据服务正在关闭...")
    cache_layer.close()
    await close_connections()
    logger.info("✅ 数据服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="Fruver 农产品价格数据服务",
    description=(
        "哥伦比亚批发市场果蔬周度价格的只读数据服务：\n"
        "- 🥕 产品目录、周期明细、历史序列\n"
        "- 📈 市场指标（通胀代理 / 区域差异 / 市场摩擦 / 趋势得分 / 波动率）\n"
        "- 💼 业务变量（稳定性 / 趋势速度 / 套利 / 预警 / 补货成本 / 预测 / 替代品）\n"
        "- 🧺 家庭菜篮子价值与走势\n\n"
        "**分层架构**\n"
        "```\n"
        "Acquisition Layer  ← Supabase 价格表查询与分页\n"
        "Cache Layer        ← TTL 缓存 + 请求合并 + 快照持久化\n"
        "Processing Layer   ← 行校验、中位数重采样、菜篮子汇总\n"
        "Indicator Layer    ← 国家级市场指标\n"
        "Business Layer     ← 决策类业务变量\n"
        "```"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


# ── 异常处理 ──────────────────────────────────────────────
@app.exception_handler(APIError)
async def upstream_exception_handler(request: Request, exc: APIError):
    logger.error(f"数据源查询失败 {request.url.path}: {exc.message}")
    body = ApiResponse.from_error(exc, error="数据源查询失败")
    return JSONResponse(status_code=502, content=body.model_dump())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    body = ApiResponse.from_error(exc, error="内部服务错误")
    return JSONResponse(status_code=500, content=body.model_dump())


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(products.router)
app.include_router(basket.router)
app.include_router(cache.router)


# ── 根路由 ───────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "Fruver DataService",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "fruver_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
