"""
Layer 5 – 业务变量层
基于市场指标和原始行计算决策类变量：
采购稳定性指数、趋势速度、区域套利空间、价格预警、补货成本、
7 日价格预测（线性回归）、区域价格偏离、替代品推荐
"""

import logging
from typing import Dict, List, Optional

from fruver_service.config import settings
from fruver_service.layers.indicators import IndicatorLayer, get_indicator_layer
from fruver_service.models.metrics import (
    ArbitrageMargin,
    BusinessMetricSet,
    PriceAlert,
    PriceDistance,
    ReplenishmentCost,
    StabilityIndex,
    Substitution,
    TrendVelocity,
)
from fruver_service.models.price import PriceRecord, Trend, trend_value
from fruver_service.utils.stats import average, finite, median, percent_change

logger = logging.getLogger(__name__)

PROJECTION_WINDOW = 12
PROJECTION_TREND_FACTOR = 0.02
PEER_MAX_INCREASE_PCT = 5.0


def trend_from_numeric(value: float) -> Trend:
    """平均趋势值 → 最接近的趋势符号"""
    if value >= 2.5:
        return "+++"
    if value >= 1.5:
        return "++"
    if value >= 0.5:
        return "+"
    if value <= -2.5:
        return "---"
    if value <= -1.5:
        return "--"
    if value <= -0.5:
        return "-"
    return None


class BusinessLayer:
    """业务变量层"""

    def __init__(self, indicators: Optional[IndicatorLayer] = None):
        self._indicators = indicators or get_indicator_layer()

    # ── 单项变量 ──────────────────────────────────────────

    def stability_index(self, max_price: float, min_price: float, median_price: float) -> StabilityIndex:
        """采购稳定性指数（1-5），价差越大越不稳定"""
        spread = (max_price - min_price) / median_price if median_price else 0.0

        if spread <= 0.1:
            return StabilityIndex(value=5, stars="⭐⭐⭐⭐⭐", description="Precio Fijo", risk="Bajo")
        if spread <= 0.2:
            return StabilityIndex(value=4, stars="⭐⭐⭐⭐", description="Estable", risk="Bajo")
        if spread <= 0.4:
            return StabilityIndex(value=3, stars="⭐⭐⭐", description="Moderado", risk="Medio")
        if spread <= 0.6:
            return StabilityIndex(value=2, stars="⭐⭐", description="Variable", risk="Medio")
        return StabilityIndex(value=1, stars="⭐", description="Mucho regateo/Riesgo", risk="Alto")

    def trend_velocity(self, current: Trend, previous: Trend) -> TrendVelocity:
        velocity = trend_value(current) - trend_value(previous)

        if velocity >= 2:
            change, recommendation = "strong acceleration", "accumulate"
        elif velocity >= 1:
            change, recommendation = "moderate acceleration", "accumulate"
        elif velocity == 0:
            change, recommendation = "stable", "hold"
        elif velocity >= -1:
            change, recommendation = "moderate deceleration", "hold"
        else:
            change, recommendation = "strong deceleration", "liquidate"

        return TrendVelocity(
            velocity=velocity,
            current_trend=current,
            previous_trend=previous,
            change=change,
            recommendation=recommendation,
        )

    def arbitrage_margin(
        self,
        reference_price: float,
        national_price: float,
        transport_cost_pct: float = None,
    ) -> ArbitrageMargin:
        """参考城市相对全国中位数的溢价，扣除运输成本后的净空间"""
        if transport_cost_pct is None:
            transport_cost_pct = settings.TRANSPORT_COST_PCT

        if not national_price or reference_price <= national_price:
            return ArbitrageMargin(
                gross_margin=0.0,
                net_margin=0.0,
                reference_price=reference_price,
                national_price=national_price,
                transport_cost_pct=transport_cost_pct,
                recommendation="not recommended",
            )

        gross = (reference_price - national_price) / national_price * 100
        net = gross - transport_cost_pct

        if net > 25:
            recommendation = "high"
        elif net > 15:
            recommendation = "medium"
        elif net > 5:
            recommendation = "low"
        else:
            recommendation = "not recommended"

        return ArbitrageMargin(
            gross_margin=gross,
            net_margin=net,
            reference_price=reference_price,
            national_price=national_price,
            transport_cost_pct=transport_cost_pct,
            recommendation=recommendation,
        )

    def price_alert(self, trend: Trend, velocity: float, volatility: float) -> PriceAlert:
        value = trend_value(trend)
        if value <= -2 and velocity <= -1:
            return "strong buy"
        if value >= 2 and velocity >= 1:
            return "strong sell"
        if value == 0 and volatility < 10:
            return "stable"
        return "monitor"

    def replenishment_cost(
        self,
        max_price: float,
        weekly_inflation: float,
        safety_margin_pct: float = None,
    ) -> ReplenishmentCost:
        """按周通胀 ×4 近似月度通胀，叠加安全边际"""
        if safety_margin_pct is None:
            safety_margin_pct = settings.SAFETY_MARGIN_PCT

        projected = weekly_inflation * 4
        price = max_price * (1 + projected / 100) * (1 + safety_margin_pct / 100)

        if projected > 20:
            recommendation = "Alta volatilidad. Considerar ajustar precios del menú."
        elif projected > 10:
            recommendation = "Moderada volatilidad. Monitorear semanalmente."
        else:
            recommendation = "Estable. Puede mantener precios actuales."

        return ReplenishmentCost(
            max_price=max_price,
            weekly_inflation=weekly_inflation,
            replenishment_price=round(price),
            safety_margin_pct=safety_margin_pct,
            recommendation=recommendation,
        )

    def project_price(self, history: List[float], trend: Trend) -> float:
        """最小二乘线性回归外推下一期，再按趋势微调"""
        history = finite(history)
        if len(history) < 2:
            return round(history[-1]) if history else 0

        n = len(history)
        sum_x = sum(range(n))
        sum_y = sum(history)
        sum_xy = sum(x * y for x, y in enumerate(history))
        sum_x2 = sum(x * x for x in range(n))

        denom = n * sum_x2 - sum_x * sum_x
        slope = (n * sum_xy - sum_x * sum_y) / denom if denom else 0.0
        intercept = (sum_y - slope * sum_x) / n

        adjustment = trend_value(trend) * PROJECTION_TREND_FACTOR
        return round((slope * n + intercept) * (1 + adjustment))

    def price_distance(self, local_price: float, national_price: float) -> PriceDistance:
        difference = local_price - national_price
        difference_pct = difference / national_price * 100 if national_price else 0.0

        if difference_pct > 10:
            status = "overvalued"
        elif difference_pct < -10:
            status = "undervalued"
        else:
            status = "aligned"

        return PriceDistance(
            local_price=local_price,
            national_price=national_price,
            difference=difference,
            difference_pct=difference_pct,
            status=status,
        )

    def substitution(
        self,
        product: str,
        current_price: float,
        previous_price: Optional[float],
        peers_current: Dict[str, float],
        peers_previous: Dict[str, float],
        group_name: Optional[str] = None,
        threshold_pct: float = None,
    ) -> Optional[Substitution]:
        """本品涨幅超过阈值时，在同组、涨幅 ≤5% 的产品中找节省比例最高的替代品"""
        if threshold_pct is None:
            threshold_pct = settings.SUBSTITUTION_THRESHOLD_PCT
        if not previous_price:
            return None

        change = percent_change(current_price, previous_price)
        if change <= threshold_pct:
            return None

        candidates: List[Substitution] = []
        for peer, peer_price in peers_current.items():
            if peer == product:
                continue
            prev = peers_previous.get(peer)
            if not prev:
                continue
            if percent_change(peer_price, prev) > PEER_MAX_INCREASE_PCT:
                continue
            savings = (current_price - peer_price) / current_price * 100 if current_price else 0.0
            candidates.append(Substitution(
                original_product=product,
                alternative_product=peer,
                original_price=current_price,
                alternative_price=peer_price,
                savings_pct=savings,
                group_name=group_name,
                recommendation=(
                    f"{product} está cara (subió {change:.1f}%), "
                    f"considera {peer} (ahorro {savings:.1f}%)."
                ),
            ))

        if not candidates:
            return None
        # sorted 稳定排序：节省相同时保留发现顺序
        return sorted(candidates, key=lambda c: c.savings_pct, reverse=True)[0]

    # ── 全量变量 ──────────────────────────────────────────

    def average_trend(self, rows: List[PriceRecord]) -> Trend:
        return trend_from_numeric(average([trend_value(r.trend) for r in rows]))

    def compute_all(
        self,
        current: List[PriceRecord],
        previous: List[PriceRecord],
        series_values: List[float],
        volatility: float,
        weekly_inflation: float,
        reference_city: str = None,
    ) -> BusinessMetricSet:
        """当前产品页面所需的业务变量；替代品推荐需同组数据，另行计算"""
        reference_city = (reference_city or settings.ARBITRAGE_REFERENCE_CITY).lower()

        national = median(finite(r.avg_price for r in current))
        trend_now = self.average_trend(current)
        trend_prev = self.average_trend(previous)
        velocity = self.trend_velocity(trend_now, trend_prev)

        min_price, max_price = self._indicators.price_range(current)

        reference_prices = finite(
            r.avg_price for r in current if (r.city or "").lower() == reference_city
        )
        arbitrage = None
        distance = None
        if reference_prices:
            reference_price = median(reference_prices)
            arbitrage = self.arbitrage_margin(reference_price, national)
            distance = self.price_distance(reference_price, national)

        return BusinessMetricSet(
            stability=self.stability_index(max_price, min_price, national),
            trend_velocity=velocity,
            arbitrage=arbitrage,
            alert=self.price_alert(trend_now, velocity.velocity, volatility),
            replenishment=self.replenishment_cost(max_price, weekly_inflation),
            projected_price_7d=self.project_price(series_values[-PROJECTION_WINDOW:], trend_now),
            price_distance=distance,
        )


# ── 模块级别单例 ──────────────────────────────────────────
_business: Optional[BusinessLayer] = None


def get_business_layer() -> BusinessLayer:
    global _business
    if _business is None:
        _business = BusinessLayer()
    return _business
