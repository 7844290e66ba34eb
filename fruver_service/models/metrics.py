"""指标 / 业务变量结果模型（每次请求实时计算，不缓存）"""

from typing import List, Literal, Optional

from pydantic import BaseModel

from fruver_service.models.price import ProductPeriod, SeriesPoint, Trend


class IndicatorSet(BaseModel):
    inflation_proxy: float = 0.0        # %
    regional_disparity_cv: float = 0.0  # %
    friction_spread: float = 0.0        # 比率
    trend_score: float = 0.0            # -100..100
    volatility: float = 0.0             # 周涨跌幅标准差


class StabilityIndex(BaseModel):
    value: int                           # 1..5
    stars: str
    description: str
    risk: Literal["Bajo", "Medio", "Alto"]


class TrendVelocity(BaseModel):
    velocity: int
    current_trend: Trend = None
    previous_trend: Trend = None
    change: Literal[
        "strong acceleration",
        "moderate acceleration",
        "stable",
        "moderate deceleration",
        "strong deceleration",
    ]
    recommendation: Literal["accumulate", "hold", "liquidate"]


class ArbitrageMargin(BaseModel):
    gross_margin: float
    net_margin: float
    reference_price: float
    national_price: float
    transport_cost_pct: float
    recommendation: Literal["high", "medium", "low", "not recommended"]


PriceAlert = Literal["strong buy", "strong sell", "stable", "monitor"]


class ReplenishmentCost(BaseModel):
    max_price: float
    weekly_inflation: float
    replenishment_price: float
    safety_margin_pct: float
    recommendation: str


class PriceDistance(BaseModel):
    local_price: float
    national_price: float
    difference: float
    difference_pct: float
    status: Literal["overvalued", "undervalued", "aligned"]


class Substitution(BaseModel):
    original_product: str
    alternative_product: str
    original_price: float
    alternative_price: float
    savings_pct: float
    group_name: Optional[str] = None
    recommendation: str


class BusinessMetricSet(BaseModel):
    stability: StabilityIndex
    trend_velocity: TrendVelocity
    arbitrage: Optional[ArbitrageMargin] = None
    alert: PriceAlert
    replenishment: ReplenishmentCost
    projected_price_7d: Optional[float] = None
    price_distance: Optional[PriceDistance] = None
    substitution: Optional[Substitution] = None


class MarketComparison(BaseModel):
    """某个市场在本期（A）与上期（B）的价格中位数，该期无报价时为 None"""

    market: str
    period_a: Optional[float] = None
    period_b: Optional[float] = None


class ProductOverview(BaseModel):
    """单个产品页面所需的全部数据"""

    product: str
    current_period: ProductPeriod
    previous_period: ProductPeriod
    national_price: float = 0.0
    market_table: List[MarketComparison] = []
    series: List[SeriesPoint]
    indicators: IndicatorSet
    metrics: BusinessMetricSet
    substitution: Optional[Substitution] = None
