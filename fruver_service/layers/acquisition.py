"""
Layer 1 – 数据获取层
从 Supabase（PostgREST）价格表拉取原始行，负责分页与查询构造。
查询失败（postgrest APIError 等）原样向上抛出，不做包装与重试。
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from supabase import AsyncClient

from fruver_service.config import settings
from fruver_service.db import get_supabase

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
PageLoader = Callable[[int, int], Awaitable[List[Row]]]


class AcquisitionLayer:
    """数据获取层：封装价格表的各类查询"""

    def __init__(self, client: Optional[AsyncClient] = None):
        self._client = client
        self._table = settings.PRICE_TABLE
        self._page_size = settings.PAGE_SIZE
        self._max_pages = settings.MAX_PAGES

    @property
    def client(self) -> AsyncClient:
        client = self._client or get_supabase()
        if client is None:
            raise RuntimeError("Supabase 客户端未初始化")
        return client

    def _query(self, columns: str = "*"):
        return self.client.table(self._table).select(columns)

    # ── 分页 ──────────────────────────────────────────────

    async def fetch_all(self, loader: PageLoader) -> List[Row]:
        """按 offset 连续拉取分页，遇到不满一页或达到页数上限时停止"""
        out: List[Row] = []
        for page in range(self._max_pages):
            start = page * self._page_size
            end = start + self._page_size - 1
            chunk = await loader(start, end)
            out.extend(chunk)
            if len(chunk) < self._page_size:
                break
        else:
            logger.warning(f"分页拉取达到上限 {self._max_pages} 页，结果可能不完整")
        return out

    # ── 日期 ──────────────────────────────────────────────

    async def fetch_latest_date(self) -> str:
        resp = await (
            self._query("fecha_inicio")
            .order("fecha_inicio", desc=True)
            .limit(1)
            .execute()
        )
        rows = resp.data or []
        return (rows[0].get("fecha_inicio") or "") if rows else ""

    async def fetch_global_dates(self, limit: int) -> List[Row]:
        """从最新日期往前扫描 limit 行，只取 fecha_inicio"""
        resp = await (
            self._query("fecha_inicio")
            .order("fecha_inicio", desc=True)
            .limit(limit)
            .execute()
        )
        return resp.data or []

    async def fetch_product_dates(self, product: str, limit: int = 500) -> List[Row]:
        resp = await (
            self._query("fecha_inicio,fecha_final")
            .eq("producto", product)
            .order("fecha_inicio", desc=True)
            .limit(limit)
            .execute()
        )
        return resp.data or []

    # ── 目录 ──────────────────────────────────────────────

    async def fetch_catalog(self) -> List[Row]:
        """预聚合目录：每个产品一行，含最新价与上期价"""
        resp = await self.client.rpc(settings.CATALOG_RPC).execute()
        rows = resp.data or []
        logger.info(f"产品目录获取成功，共 {len(rows)} 条")
        return rows

    # ── 明细行 ────────────────────────────────────────────

    async def fetch_period_rows(self, product: str, period_start: str) -> List[Row]:
        async def page(start: int, end: int) -> List[Row]:
            resp = await (
                self._query("*")
                .eq("producto", product)
                .eq("fecha_inicio", period_start)
                .order("ciudad")
                .range(start, end)
                .execute()
            )
            return resp.data or []

        return await self.fetch_all(page)

    async def fetch_history_rows(self, product: str, limit: int) -> List[Row]:
        resp = await (
            self._query("fecha_inicio,precio_medio")
            .eq("producto", product)
            .order("fecha_inicio", desc=True)
            .limit(limit)
            .execute()
        )
        return resp.data or []

    async def fetch_group_rows(self, group_code: int, period_start: str) -> List[Row]:
        async def page(start: int, end: int) -> List[Row]:
            resp = await (
                self._query("producto,precio_medio")
                .eq("codigo_grupo", group_code)
                .eq("fecha_inicio", period_start)
                .order("producto")
                .range(start, end)
                .execute()
            )
            return resp.data or []

        return await self.fetch_all(page)

    async def fetch_basket_rows(self, products: List[str], period_starts: List[str]) -> List[Row]:
        """菜篮子商品在给定周期内的价格行"""
        if not products or not period_starts:
            return []
        query = self._query("fecha_inicio,producto,precio_medio").in_("producto", products)
        if len(period_starts) == 1:
            query = query.eq("fecha_inicio", period_starts[0])
        else:
            query = query.in_("fecha_inicio", period_starts)
        resp = await query.limit(settings.BASKET_ROW_LIMIT * len(period_starts)).execute()
        return resp.data or []
