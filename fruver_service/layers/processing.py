"""
Layer 3 – 数据处理层
把数据源的原始行校验为 PriceRecord，并完成分组、周/月中位数重采样与菜篮子汇总；
另含产品页的逐市场对比表与目录检索 / 分类过滤。
"""

import logging
import unicodedata
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
from pydantic import ValidationError

from fruver_service.models.metrics import MarketComparison
from fruver_service.models.price import (
    CatalogItem,
    HistoryRange,
    PeriodDates,
    PriceRecord,
    SeriesPoint,
)
from fruver_service.utils.stats import finite, format_year_month, group_by, median

logger = logging.getLogger(__name__)

MARKET_TABLE_SIZE = 12
UNKNOWN_MARKET = "desconocido"

SEARCH_MIN_CHARS = 2
SEARCH_LIMIT = 8

# 短区间返回最近 N 个周度点
_WEEKLY_POINTS = {
    HistoryRange.ONE_MONTH: 4,
    HistoryRange.SIX_MONTHS: 26,
    HistoryRange.ONE_YEAR: 52,
}

MAX_MONTHLY_POINTS = 60


def _clean_prices(series: pd.Series) -> pd.Series:
    values = pd.to_numeric(series, errors="coerce")
    return values.replace([float("inf"), float("-inf")], float("nan"))


class ProcessingLayer:
    """数据处理层：校验 + 分组 + 重采样"""

    def normalize_records(self, rows: List[Dict[str, Any]]) -> List[PriceRecord]:
        """原始行 → PriceRecord；校验失败的行跳过并记录"""
        records: List[PriceRecord] = []
        skipped = 0
        for row in rows:
            try:
                records.append(PriceRecord.model_validate(row))
            except ValidationError:
                skipped += 1
        if skipped:
            logger.warning(f"跳过 {skipped} 条格式错误的价格行")
        return records

    def period_dates(self, rows: List[Dict[str, Any]]) -> List[PeriodDates]:
        """提取不重复的周期（按起始日降序），结束日缺失时取起始日"""
        seen: Dict[str, str] = {}
        for row in rows:
            start = row.get("fecha_inicio")
            if start and start not in seen:
                seen[start] = row.get("fecha_final") or start
        return [
            PeriodDates(start=start, end=end)
            for start, end in sorted(seen.items(), key=lambda kv: kv[0], reverse=True)
        ]

    def distinct_dates(self, rows: List[Dict[str, Any]]) -> List[str]:
        """不重复的 fecha_inicio，升序"""
        return sorted({r["fecha_inicio"] for r in rows if r.get("fecha_inicio")})

    # ── 序列重采样 ────────────────────────────────────────

    def weekly_medians(self, rows: List[Dict[str, Any]]) -> List[SeriesPoint]:
        """按周期起始日分组，每周取各市场价格中位数"""
        if not rows:
            return []
        df = pd.DataFrame(rows)
        if "fecha_inicio" not in df.columns or "precio_medio" not in df.columns:
            return []
        df = df.dropna(subset=["fecha_inicio"])
        df["precio_medio"] = _clean_prices(df["precio_medio"])
        weekly = df.groupby("fecha_inicio")["precio_medio"].median().fillna(0.0).sort_index()
        return [SeriesPoint(label=str(label), value=float(value)) for label, value in weekly.items()]

    def monthly_medians(self, points: List[SeriesPoint]) -> List[SeriesPoint]:
        """周度点按自然月再分组取中位数"""
        if not points:
            return []
        df = pd.DataFrame([p.model_dump() for p in points])
        df["month"] = df["label"].str[:7]
        df["value"] = _clean_prices(df["value"])
        monthly = df.groupby("month")["value"].median().fillna(0.0).sort_index()
        return [SeriesPoint(label=str(label), value=float(value)) for label, value in monthly.items()]

    def resample_series(self, weekly: List[SeriesPoint], rng: HistoryRange) -> List[SeriesPoint]:
        if rng in _WEEKLY_POINTS:
            return weekly[-_WEEKLY_POINTS[rng]:]
        return self.monthly_medians(weekly)[-MAX_MONTHLY_POINTS:]

    # ── 按产品汇总 ────────────────────────────────────────

    def median_by_product(
        self, rows: List[Dict[str, Any]], positive_only: bool = False
    ) -> Dict[str, float]:
        """每个产品的价格中位数，保持首次出现顺序"""
        if not rows:
            return {}
        df = pd.DataFrame(rows)
        if "producto" not in df.columns or "precio_medio" not in df.columns:
            return {}
        df["precio_medio"] = _clean_prices(df["precio_medio"])
        if positive_only:
            df = df[df["precio_medio"] > 0]
            if df.empty:
                return {}
        medians = df.groupby("producto", sort=False)["precio_medio"].median().fillna(0.0)
        return {str(k): float(v) for k, v in medians.items()}

    # ── 产品页面 ──────────────────────────────────────────

    def market_comparison(
        self,
        current: List[PriceRecord],
        previous: List[PriceRecord],
        limit: int = MARKET_TABLE_SIZE,
    ) -> List[MarketComparison]:
        """
        逐市场对比两个周期的价格中位数

        市场键为 "nombre_mercado · ciudad"；某期没有该市场时为 None。
        按本期价格升序，无本期价格的排在最后，最多返回 limit 行。
        """
        a = _median_by_market(current)
        b = _median_by_market(previous)
        markets = list(a) + [k for k in b if k not in a]
        table = [
            MarketComparison(market=k, period_a=a.get(k), period_b=b.get(k))
            for k in markets
        ]
        table.sort(key=lambda row: (row.period_a is None, row.period_a or 0.0))
        return table[:limit]

    def national_price(self, rows: List[PriceRecord]) -> float:
        """全国价格：本期所有市场价格的中位数"""
        return median(finite(r.avg_price for r in rows))

    # ── 目录检索 ──────────────────────────────────────────

    def search_catalog(
        self, items: List[CatalogItem], query: str, limit: int = SEARCH_LIMIT
    ) -> List[CatalogItem]:
        """产品名子串匹配（大小写不敏感），查询少于 2 个字符时不返回结果"""
        q = (query or "").strip().lower()
        if len(q) < SEARCH_MIN_CHARS:
            return []
        return [item for item in items if q in item.product.lower()][:limit]

    def catalog_categories(self, items: List[CatalogItem]) -> List[str]:
        """目录中出现的食品组（去重、忽略空值、按字母排序）"""
        names = {item.group_name for item in items if item.group_name}
        return sorted(names, key=_collation_key)

    def filter_by_category(
        self, items: List[CatalogItem], categories: Optional[List[str]]
    ) -> List[CatalogItem]:
        """按食品组过滤；未选择任何组时返回全部"""
        selected = {c for c in (categories or []) if c}
        if not selected:
            return items
        return [item for item in items if item.group_name in selected]

    def basket_total(
        self, rows: List[Dict[str, Any]], products: List[str]
    ) -> Tuple[float, List[str]]:
        """菜篮子合计：各商品正价格中位数之和，缺失商品跳过"""
        medians = self.median_by_product(rows, positive_only=True)
        used = [p for p in products if p in medians]
        return sum(medians[p] for p in used), used

    def basket_series(
        self,
        rows: List[Dict[str, Any]],
        products: List[str],
        dates: List[str],
    ) -> List[SeriesPoint]:
        """逐周菜篮子合计（四舍五入），去掉无数据的周"""
        by_date = group_by(rows, lambda r: r.get("fecha_inicio"))
        points = []
        for d in dates:
            value, _ = self.basket_total(by_date.get(d, []), products)
            value = round(value)
            if value > 0:
                points.append(SeriesPoint(label=d, value=value))
        return points


def _median_by_market(rows: List[PriceRecord]) -> Dict[str, float]:
    by_market = group_by(
        rows,
        lambda r: f"{r.market_name or UNKNOWN_MARKET} · {r.city or UNKNOWN_MARKET}",
    )
    return {k: median(finite(r.avg_price for r in group)) for k, group in by_market.items()}


def _collation_key(text: str) -> str:
    """去掉重音后比较，使 "tubérculos" 与 "tuberculos" 排在同一位置"""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def last_date_for_month(dates: List[str], year_month: str) -> Optional[str]:
    """在升序日期列表中从后往前找第一个属于 year_month 的日期"""
    for d in reversed(dates):
        if format_year_month(d) == year_month:
            return d
    return None


def shift_year_month(date_iso: str, months_back: int) -> str:
    """YYYY-MM-DD 往前推 months_back 个自然月，返回 YYYY-MM"""
    year, month = int(date_iso[:4]), int(date_iso[5:7])
    index = year * 12 + (month - 1) - months_back
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


# ── 模块级别单例 ──────────────────────────────────────────
_processor: Optional[ProcessingLayer] = None


def get_processing_layer() -> ProcessingLayer:
    global _processor
    if _processor is None:
        _processor = ProcessingLayer()
    return _processor
