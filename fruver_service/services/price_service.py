"""
价格数据服务（数据访问门面）
整合数据获取、缓存、处理三层，对外提供统一的价格数据访问接口。

所有公开方法经由 CacheLayer.cached 读取（TTL 默认 1 小时，数据源每周更新一次），
缓存键按操作命名空间 + 规范化产品名（strip + lower）组织。
缓存中的值在进程重启后会以 JSON 形式恢复，因此返回前统一经过模型校验。
"""

import hashlib
import logging
from typing import Any, List, Optional

from pydantic import TypeAdapter

from fruver_service.config import settings
from fruver_service.layers.acquisition import AcquisitionLayer
from fruver_service.layers.cache import CacheLayer, make_key
from fruver_service.layers.processing import (
    ProcessingLayer,
    get_processing_layer,
    last_date_for_month,
    shift_year_month,
)
from fruver_service.models.price import (
    BasketBars,
    BasketValue,
    CatalogItem,
    HistoryRange,
    PeerPrice,
    PeriodDates,
    ProductPeriod,
    SeriesPoint,
)

logger = logging.getLogger(__name__)

_CATALOG = TypeAdapter(List[CatalogItem])
_NAMES = TypeAdapter(List[str])
_DATES = TypeAdapter(List[PeriodDates])
_SERIES = TypeAdapter(List[SeriesPoint])
_PEERS = TypeAdapter(List[PeerPrice])

# 每个区间拉取的行数基数（每周有多个市场的行，实际拉取 ×50）
_HISTORY_ROW_BASE = {
    HistoryRange.ONE_MONTH: 20,
    HistoryRange.SIX_MONTHS: 60,
    HistoryRange.ONE_YEAR: 80,
    HistoryRange.MAX: 400,
}
_ROWS_PER_WEEK = 50


def normalize_product(name: str) -> str:
    """缓存键 / 查询用的产品名：去首尾空白并小写（与数据库存储方式逐字节一致）"""
    return name.strip().lower()


def _basket_digest(products: List[str]) -> str:
    return hashlib.md5("|".join(sorted(products)).encode("utf-8")).hexdigest()[:12]


class PriceDataService:
    """价格数据业务服务"""

    def __init__(
        self,
        cache: CacheLayer,
        acquisition: AcquisitionLayer,
        processing: Optional[ProcessingLayer] = None,
        ttl: Optional[float] = None,
    ):
        self._cache = cache
        self._acq = acquisition
        self._proc = processing or get_processing_layer()
        self._ttl = settings.CACHE_TTL if ttl is None else ttl

    @property
    def processing(self) -> ProcessingLayer:
        return self._proc

    async def _cached(self, key: str, loader) -> Any:
        return await self._cache.cached(key, self._ttl, loader)

    # ── 全局日期 ──────────────────────────────────────────

    async def get_latest_global_date(self) -> str:
        """全表最新的周期起始日"""
        return await self._cached(make_key("fechas", "global", "actual"), self._acq.fetch_latest_date)

    async def get_global_dates(self) -> List[str]:
        """最近的全部不重复周期起始日（升序）"""
        async def loader() -> List[str]:
            rows = await self._acq.fetch_global_dates(settings.GLOBAL_DATES_SCAN_LIMIT)
            dates = self._proc.distinct_dates(rows)
            logger.info(f"全局可用日期 {len(dates)} 个，最近: {dates[-5:]}")
            return dates

        value = await self._cached(make_key("fechas", "globales", "todas"), loader)
        return _NAMES.validate_python(value)

    # ── 目录 ──────────────────────────────────────────────

    async def get_catalog(self) -> List[CatalogItem]:
        """轻量目录：每个产品一行（最新价、上期价、涨跌幅），按产品名排序"""
        async def loader() -> List[CatalogItem]:
            rows = await self._acq.fetch_catalog()
            items = [
                CatalogItem(
                    product=r.get("producto") or "",
                    group_name=r.get("grupo_alimentos") or "desconocido",
                    group_code=int(r.get("codigo_grupo") or 0),
                    current_price=r.get("precio_medio"),
                    previous_price=r.get("precio_anterior"),
                    change_pct=r.get("cambio_pct"),
                    period_start=r.get("fecha_inicio") or "",
                )
                for r in rows
            ]
            return sorted(items, key=lambda item: item.product)

        value = await self._cached(make_key("catalogo", "basico"), loader)
        return _CATALOG.validate_python(value)

    async def get_product_names(self) -> List[str]:
        async def loader() -> List[str]:
            return [item.product for item in await self.get_catalog()]

        value = await self._cached(make_key("productos", "distinct"), loader)
        return _NAMES.validate_python(value)

    # ── 产品周期 ──────────────────────────────────────────

    async def get_period_dates(self, product: str) -> List[PeriodDates]:
        """产品的不重复周期（起始日降序）"""
        p = normalize_product(product)

        async def loader() -> List[PeriodDates]:
            return self._proc.period_dates(await self._acq.fetch_product_dates(p))

        value = await self._cached(make_key("producto", p, "fechas"), loader)
        return _DATES.validate_python(value)

    async def _period(self, product: str, index: int, name: str) -> ProductPeriod:
        p = normalize_product(product)

        async def loader() -> ProductPeriod:
            dates = await self.get_period_dates(p)
            if len(dates) <= index:
                return ProductPeriod.empty()
            period = dates[index]
            rows = await self._acq.fetch_period_rows(p, period.start)
            return ProductPeriod(
                start=period.start,
                end=period.end,
                rows=self._proc.normalize_records(rows),
            )

        value = await self._cached(make_key("producto", p, name), loader)
        return ProductPeriod.model_validate(value)

    async def get_current_period(self, product: str) -> ProductPeriod:
        """最近一个周期的全部行；无数据时返回空周期"""
        return await self._period(product, 0, "ultimo_periodo")

    async def get_previous_period(self, product: str) -> ProductPeriod:
        """倒数第二个周期的全部行；不足两个周期时返回空周期"""
        return await self._period(product, 1, "periodo_anterior")

    # ── 历史序列 ──────────────────────────────────────────

    async def get_history_series(self, product: str, rng: HistoryRange) -> List[SeriesPoint]:
        """历史序列：周度中位数；max 区间按月再取中位数"""
        p = normalize_product(product)
        rng = HistoryRange(rng)

        async def loader() -> List[SeriesPoint]:
            limit = _HISTORY_ROW_BASE[rng] * _ROWS_PER_WEEK
            rows = await self._acq.fetch_history_rows(p, limit)
            weekly = self._proc.weekly_medians(rows)
            return self._proc.resample_series(weekly, rng)

        value = await self._cached(make_key("producto", p, "serie", rng.value), loader)
        return _SERIES.validate_python(value)

    # ── 同组产品 ──────────────────────────────────────────

    async def get_group_peers(self, group_code: int, period_start: str) -> List[PeerPrice]:
        """同一食品组在某周期的全部 (产品, 价格) 行"""
        async def loader() -> List[PeerPrice]:
            rows = await self._acq.fetch_group_rows(group_code, period_start)
            return [PeerPrice.model_validate(r) for r in rows if r.get("producto")]

        value = await self._cached(make_key("grupo", group_code, "fecha", period_start), loader)
        return _PEERS.validate_python(value)

    # ── 菜篮子 ────────────────────────────────────────────

    async def get_basket_value(self, products: List[str]) -> BasketValue:
        """最新周期的菜篮子价值：各商品中位数之和"""
        names = [normalize_product(p) for p in products if normalize_product(p)]

        async def loader() -> BasketValue:
            latest = await self.get_latest_global_date()
            if not latest:
                return BasketValue()
            rows = await self._acq.fetch_basket_rows(names, [latest])
            total, used = self._proc.basket_total(rows, names)
            return BasketValue(
                total=total,
                products_found=len(used),
                products_used=used,
                period_start=latest,
            )

        value = await self._cached(make_key("canasta", "actual", _basket_digest(names)), loader)
        return BasketValue.model_validate(value)

    async def get_basket_series(self, products: List[str], weeks: int = None) -> List[SeriesPoint]:
        """最近若干周的菜篮子合计序列"""
        weeks = weeks or settings.BASKET_SERIES_WEEKS
        names = [normalize_product(p) for p in products if normalize_product(p)]

        async def loader() -> List[SeriesPoint]:
            if not names:
                return []
            all_dates = await self.get_global_dates()
            if not all_dates:
                logger.warning("数据库中没有可用日期")
                return []
            dates = all_dates[-weeks:]
            rows = await self._acq.fetch_basket_rows(names, dates)
            logger.info(f"菜篮子序列：{len(dates)} 个日期，{len(rows)} 行")
            return self._proc.basket_series(rows, names, dates)

        key = make_key("canasta", "serie", weeks, _basket_digest(names))
        value = await self._cached(key, loader)
        return _SERIES.validate_python(value)

    async def _basket_total_at(self, names: List[str], period_start: Optional[str]) -> float:
        if not period_start:
            return 0
        rows = await self._acq.fetch_basket_rows(names, [period_start])
        total, _ = self._proc.basket_total(rows, names)
        return round(total)

    async def get_basket_bars(self, products: List[str]) -> BasketBars:
        """三根柱：本月最新、上月最后一期、两个月前最后一期"""
        names = [normalize_product(p) for p in products if normalize_product(p)]

        async def loader() -> BasketBars:
            if not names:
                return BasketBars()
            rows = await self._acq.fetch_global_dates(settings.BARS_DATES_SCAN_LIMIT)
            dates = self._proc.distinct_dates(rows)
            if not dates:
                return BasketBars()

            current = dates[-1]
            previous = last_date_for_month(dates, shift_year_month(current, 1))
            two_back = last_date_for_month(dates, shift_year_month(current, 2))

            return BasketBars(
                values=[
                    await self._basket_total_at(names, current),
                    await self._basket_total_at(names, previous),
                    await self._basket_total_at(names, two_back),
                ],
                dates=[current, previous, two_back],
            )

        value = await self._cached(make_key("canasta", "barras", "3m", _basket_digest(names)), loader)
        return BasketBars.model_validate(value)

    # ── 缓存维护 ──────────────────────────────────────────

    def invalidate_product(self, product: str) -> int:
        """强制该产品的所有缓存下次重新加载"""
        return self._cache.invalidate(make_key("producto", normalize_product(product)) + ":")
