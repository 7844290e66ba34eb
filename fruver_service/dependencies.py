"""
路由依赖
服务实例在应用生命周期中创建并挂载到 app.state，路由通过 Depends 获取
"""

from typing import List, Optional

from fastapi import HTTPException, Query, Request, status

from fruver_service.config import settings
from fruver_service.layers.cache import CacheLayer
from fruver_service.services.market_service import MarketService
from fruver_service.services.price_service import PriceDataService


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="数据服务尚未就绪",
        )
    return value


def get_price_service(request: Request) -> PriceDataService:
    return _state(request, "prices")


def get_market_service(request: Request) -> MarketService:
    return _state(request, "market")


def get_cache(request: Request) -> CacheLayer:
    return _state(request, "cache")


def basket_products(
    products: Optional[str] = Query(
        default=None,
        description="逗号分隔的商品列表，缺省使用配置中的家庭基本菜篮子",
    ),
) -> List[str]:
    if not products:
        return list(settings.BASKET_PRODUCTS)
    return [p.strip() for p in products.split(",") if p.strip()]
