"""
Layer 4 – 市场指标层
在 PriceRecord 集合上计算国家级（跨市场中位数）市场指标：
农业通胀代理、区域差异系数、市场摩擦、趋势得分、历史波动率
"""

import logging
import math
from typing import List, Optional, Sequence

from fruver_service.models.metrics import IndicatorSet
from fruver_service.models.price import TREND_MAX, PriceRecord, trend_value
from fruver_service.utils.stats import average, clamp, finite, group_by, median, percent_change, std_dev

logger = logging.getLogger(__name__)


class IndicatorLayer:
    """市场指标层：纯函数，空输入或非有限值返回 0"""

    def inflation_proxy(self, current: float, previous: float) -> float:
        """IPC 代理：(本期 / 上期 - 1) × 100"""
        result = percent_change(current, previous)
        return result if math.isfinite(result) else 0.0

    def regional_disparity(self, prices: List[float]) -> float:
        """区域差异：变异系数 σ/μ × 100"""
        prices = finite(prices)
        mu = average(prices)
        if not mu:
            return 0.0
        return std_dev(prices) / mu * 100

    def market_friction(self, max_price: float, min_price: float, median_price: float) -> float:
        """市场摩擦：(最高 - 最低) / 中位数"""
        if not median_price:
            return 0.0
        if max_price < min_price:
            return 0.0
        return (max_price - min_price) / median_price

    def trend_score(self, trends: Sequence[Optional[str]]) -> float:
        """趋势得分，归一化到 [-100, 100]"""
        if not trends:
            return 0.0
        score = sum(trend_value(t) for t in trends)
        return clamp(score / (len(trends) * TREND_MAX) * 100, -100.0, 100.0)

    def historical_volatility(self, prices: List[float]) -> float:
        """逐期涨跌幅的样本标准差；至少 3 个点、2 个有效变化"""
        prices = finite(prices)
        if len(prices) < 3:
            return 0.0
        changes = []
        for prev, curr in zip(prices, prices[1:]):
            if not prev:
                continue
            changes.append((curr - prev) / prev * 100)
        changes = finite(changes)
        if len(changes) < 2:
            return 0.0
        return std_dev(changes)

    # ── 全量指标 ──────────────────────────────────────────

    def city_medians(self, rows: List[PriceRecord]) -> List[float]:
        by_city = group_by(rows, lambda r: r.city or "desconocido")
        return [median(finite(r.avg_price for r in group)) for group in by_city.values()]

    def price_range(self, rows: List[PriceRecord]):
        """全国最低价与最高价；无有效数据时返回 (0, 0)"""
        mins = finite(r.min_price for r in rows)
        maxs = finite(r.max_price for r in rows)
        if not mins or not maxs:
            return 0.0, 0.0
        return min(mins), max(maxs)

    def compute_all(
        self,
        current: List[PriceRecord],
        previous: List[PriceRecord],
    ) -> IndicatorSet:
        """国家级指标汇总；波动率需历史序列，由调用方另行填入"""
        median_now = median(finite(r.avg_price for r in current))
        median_prev = median(finite(r.avg_price for r in previous))

        min_price, max_price = self.price_range(current)

        return IndicatorSet(
            inflation_proxy=self.inflation_proxy(median_now, median_prev),
            regional_disparity_cv=self.regional_disparity(self.city_medians(current)),
            friction_spread=self.market_friction(max_price, min_price, median_now),
            trend_score=self.trend_score([r.trend for r in current]),
            volatility=0.0,
        )


# ── 模块级别单例 ──────────────────────────────────────────
_indicators: Optional[IndicatorLayer] = None


def get_indicator_layer() -> IndicatorLayer:
    global _indicators
    if _indicators is None:
        _indicators = IndicatorLayer()
    return _indicators
