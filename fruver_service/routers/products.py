"""
产品价格路由
GET  /api/products                    - 产品目录（最新价 / 上期价 / 涨跌幅，可按 category 过滤）
GET  /api/products/names              - 产品名列表
GET  /api/products/categories         - 食品组列表
GET  /api/products/search?q=          - 搜索建议
GET  /api/products/{name}/periods     - 可用周期及本期 / 上期明细
GET  /api/products/{name}/series      - 历史价格序列
GET  /api/products/{name}/overview    - 产品完整分析视图
POST /api/products/{name}/refresh     - 使该产品缓存失效
"""

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from fruver_service.dependencies import get_market_service, get_price_service
from fruver_service.models.price import HistoryRange
from fruver_service.models.response import ApiResponse
from fruver_service.services.market_service import MarketService
from fruver_service.services.price_service import PriceDataService, normalize_product

router = APIRouter(prefix="/api/products", tags=["产品价格"])


@router.get("", response_model=ApiResponse)
async def list_products(
    category: Optional[List[str]] = Query(default=None, description="按食品组过滤，可重复"),
    market: MarketService = Depends(get_market_service),
):
    """产品目录"""
    items = await market.get_catalog(category)
    return ApiResponse.ok(
        data={"count": len(items), "products": items},
        message=f"获取产品目录成功，共 {len(items)} 个产品",
    )


@router.get("/names", response_model=ApiResponse)
async def list_product_names(svc: PriceDataService = Depends(get_price_service)):
    names = await svc.get_product_names()
    return ApiResponse.ok(data={"count": len(names), "names": names})


@router.get("/categories", response_model=ApiResponse)
async def list_categories(market: MarketService = Depends(get_market_service)):
    categories = await market.get_categories()
    return ApiResponse.ok(data={"count": len(categories), "categories": categories})


@router.get("/search", response_model=ApiResponse)
async def search_products(
    q: str = Query(default="", description="产品名片段，至少 2 个字符"),
    market: MarketService = Depends(get_market_service),
):
    """搜索建议（产品名子串匹配，最多 8 条）"""
    items = await market.search_products(q)
    return ApiResponse.ok(data={"query": q, "count": len(items), "products": items})


@router.get("/{name}/periods", response_model=ApiResponse)
async def get_periods(name: str, svc: PriceDataService = Depends(get_price_service)):
    """产品的可用周期，以及最近两期的全部市场行"""
    dates, current, previous = await asyncio.gather(
        svc.get_period_dates(name),
        svc.get_current_period(name),
        svc.get_previous_period(name),
    )
    return ApiResponse.ok(
        data={
            "product": normalize_product(name),
            "dates": dates,
            "current": current,
            "previous": previous,
        }
    )


@router.get("/{name}/series", response_model=ApiResponse)
async def get_series(
    name: str,
    rng: HistoryRange = Query(default=HistoryRange.SIX_MONTHS, alias="range", description="1m / 6m / 1y / max"),
    svc: PriceDataService = Depends(get_price_service),
):
    """历史价格序列（周度中位数；max 为月度中位数）"""
    points = await svc.get_history_series(name, rng)
    return ApiResponse.ok(
        data={
            "product": normalize_product(name),
            "range": rng.value,
            "count": len(points),
            "points": points,
        }
    )


@router.get("/{name}/overview", response_model=ApiResponse)
async def get_overview(
    name: str,
    rng: HistoryRange = Query(default=HistoryRange.SIX_MONTHS, alias="range"),
    market: MarketService = Depends(get_market_service),
):
    """产品页面数据：明细、序列、市场指标、业务变量、替代品"""
    overview = await market.get_product_overview(normalize_product(name), rng)
    if not overview.current_period.rows:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"未找到产品 {name} 的价格数据",
        )
    return ApiResponse.ok(data=overview)


@router.post("/{name}/refresh", response_model=ApiResponse)
async def refresh_product(name: str, svc: PriceDataService = Depends(get_price_service)):
    removed = svc.invalidate_product(name)
    return ApiResponse.ok(
        data={"product": normalize_product(name), "removed": removed},
        message=f"已清理 {removed} 条缓存",
    )
