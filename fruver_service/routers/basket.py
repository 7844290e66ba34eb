"""
家庭菜篮子路由
GET /api/basket          - 最新周期的菜篮子价值
GET /api/basket/series   - 最近 N 周的菜篮子合计序列
GET /api/basket/bars     - 本月 / 上月 / 两个月前对比柱
"""

from typing import List

from fastapi import APIRouter, Depends, Query

from fruver_service.dependencies import basket_products, get_price_service
from fruver_service.models.response import ApiResponse
from fruver_service.services.price_service import PriceDataService

router = APIRouter(prefix="/api/basket", tags=["菜篮子"])


@router.get("", response_model=ApiResponse)
async def get_basket(
    products: List[str] = Depends(basket_products),
    svc: PriceDataService = Depends(get_price_service),
):
    value = await svc.get_basket_value(products)
    return ApiResponse.ok(
        data=value,
        message=f"菜篮子 {value.products_found}/{len(products)} 个商品有报价",
    )


@router.get("/series", response_model=ApiResponse)
async def get_basket_series(
    weeks: int = Query(default=None, ge=1, le=104, description="周数，缺省 13"),
    products: List[str] = Depends(basket_products),
    svc: PriceDataService = Depends(get_price_service),
):
    points = await svc.get_basket_series(products, weeks)
    return ApiResponse.ok(data={"count": len(points), "points": points})


@router.get("/bars", response_model=ApiResponse)
async def get_basket_bars(
    products: List[str] = Depends(basket_products),
    svc: PriceDataService = Depends(get_price_service),
):
    bars = await svc.get_basket_bars(products)
    return ApiResponse.ok(data=bars)
