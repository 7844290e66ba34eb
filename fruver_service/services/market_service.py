"""
市场分析服务
整合价格数据服务 + 指标层 + 业务层，为单个产品生成完整的分析视图；
并提供目录的分类与搜索建议
"""

import asyncio
import logging
from typing import List, Optional

from fruver_service.layers.business import BusinessLayer, get_business_layer
from fruver_service.layers.indicators import IndicatorLayer, get_indicator_layer
from fruver_service.models.metrics import ProductOverview, Substitution
from fruver_service.models.price import CatalogItem, HistoryRange, ProductPeriod
from fruver_service.services.price_service import PriceDataService
from fruver_service.utils.stats import finite, median

logger = logging.getLogger(__name__)


class MarketService:
    """市场分析服务"""

    def __init__(
        self,
        prices: PriceDataService,
        indicators: Optional[IndicatorLayer] = None,
        business: Optional[BusinessLayer] = None,
    ):
        self._prices = prices
        self._indicators = indicators or get_indicator_layer()
        self._business = business or get_business_layer()

    async def get_product_overview(
        self,
        product: str,
        rng: HistoryRange = HistoryRange.SIX_MONTHS,
    ) -> ProductOverview:
        """
        获取单个产品的完整分析视图

        Args:
            product: 产品名（大小写、首尾空格不敏感）
            rng: 历史序列区间

        Returns:
            本期 / 上期明细、历史序列、市场指标、业务变量及替代品推荐
        """
        current, previous = await asyncio.gather(
            self._prices.get_current_period(product),
            self._prices.get_previous_period(product),
        )
        series = await self._prices.get_history_series(product, rng)
        series_values = finite(p.value for p in series)

        volatility = self._indicators.historical_volatility(series_values)
        indicators = self._indicators.compute_all(current.rows, previous.rows)
        indicators.volatility = volatility

        metrics = self._business.compute_all(
            current.rows,
            previous.rows,
            series_values,
            volatility,
            indicators.inflation_proxy,
        )

        substitution = await self.get_substitution(product, current, previous)
        metrics.substitution = substitution

        proc = self._prices.processing
        return ProductOverview(
            product=product,
            current_period=current,
            previous_period=previous,
            national_price=proc.national_price(current.rows),
            market_table=proc.market_comparison(current.rows, previous.rows),
            series=series,
            indicators=indicators,
            metrics=metrics,
            substitution=substitution,
        )

    # ── 目录 ──────────────────────────────────────────────

    async def get_catalog(self, categories: Optional[List[str]] = None) -> List[CatalogItem]:
        """产品目录，可按一个或多个食品组过滤"""
        items = await self._prices.get_catalog()
        return self._prices.processing.filter_by_category(items, categories)

    async def get_categories(self) -> List[str]:
        return self._prices.processing.catalog_categories(await self._prices.get_catalog())

    async def search_products(self, query: str) -> List[CatalogItem]:
        """搜索建议：至少 2 个字符，最多 8 条"""
        return self._prices.processing.search_catalog(await self._prices.get_catalog(), query)

    async def get_substitution(
        self,
        product: str,
        current: ProductPeriod,
        previous: ProductPeriod,
    ) -> Optional[Substitution]:
        """同组替代品推荐；本期或上期无数据时不计算"""
        if not current.rows or not previous.rows:
            return None

        ref = current.rows[0]
        price_now = median(finite(r.avg_price for r in current.rows))
        price_prev = median(finite(r.avg_price for r in previous.rows))

        peers_now_raw, peers_prev_raw = await asyncio.gather(
            self._prices.get_group_peers(ref.group_code, current.start),
            self._prices.get_group_peers(ref.group_code, previous.start),
        )
        # 只取有正价格的同组产品，无报价的产品不参与推荐
        proc = self._prices.processing
        peers_now = proc.median_by_product(
            [p.model_dump(by_alias=True) for p in peers_now_raw], positive_only=True
        )
        peers_prev = proc.median_by_product(
            [p.model_dump(by_alias=True) for p in peers_prev_raw], positive_only=True
        )

        result = self._business.substitution(
            ref.product,
            price_now,
            price_prev or None,
            peers_now,
            peers_prev,
            group_name=ref.group_name,
        )
        if result is not None:
            logger.info(f"{ref.product} 推荐替代品: {result.alternative_product}")
        return result
