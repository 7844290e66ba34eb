"""
测试公共夹具
  - FakeSupabase：内存版 PostgREST 查询构造器（table / select / eq / in_ / order / range / limit / execute / rpc）
  - 示例价格数据：3 个城市 × 6 个周期 × 若干产品
  - FakeClock：可手动推进的时钟
"""

import asyncio
import os
import sys
from datetime import date, timedelta

import pytest

# 确保项目根目录在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from fruver_service.layers.acquisition import AcquisitionLayer  # noqa: E402
from fruver_service.layers.business import BusinessLayer  # noqa: E402
from fruver_service.layers.cache import CacheLayer  # noqa: E402
from fruver_service.layers.indicators import IndicatorLayer  # noqa: E402
from fruver_service.layers.processing import ProcessingLayer  # noqa: E402
from fruver_service.layers.storage import MemoryStorage  # noqa: E402
from fruver_service.services.market_service import MarketService  # noqa: E402
from fruver_service.services.price_service import PriceDataService  # noqa: E402


# ─────────────────────────────────────────────────────────
# 示例数据
# ─────────────────────────────────────────────────────────

DATES = ["2024-01-05", "2024-01-26", "2024-02-02", "2024-02-23", "2024-03-01", "2024-03-08"]

# 每个周期的全国中位数（各城市价格围绕该值分布，中位数恰好等于它）
BASE_PRICES = {
    "papa criolla": [2000, 2100, 2200, 2300, 2400, 3000],
    "papa sabanera": [1500, 1500, 1500, 1500, 1500, 1520],
    "tomate chonto": [3000, 3000, 3100, 3100, 3200, 3200],
}

GROUPS = {
    "papa criolla": (1, "tubérculos, raíces y plátanos"),
    "papa sabanera": (1, "tubérculos, raíces y plátanos"),
    "tomate chonto": (2, "verduras y hortalizas"),
    "aguacate hass": (3, "frutas frescas"),
}

TRENDS = {
    "papa criolla": ["", "+", "+", "+", "+", "++"],
}


def make_row(product, fecha, city, price, trend="", group=None):
    code, name = group or GROUPS.get(product, (0, None))
    return {
        "producto": product,
        "mercado_mayorista": f"central {city}",
        "nombre_mercado": f"{city}, central",
        "ciudad": city,
        "departamento": city,
        "precio_minimo": price - 100,
        "precio_medio": price,
        "precio_maximo": price + 100,
        "tendencia": trend,
        "fecha_inicio": fecha,
        "fecha_final": (date.fromisoformat(fecha) + timedelta(days=6)).isoformat(),
        "codigo_grupo": code,
        "grupo_alimentos": name,
    }


def sample_rows():
    rows = []
    for product, prices in BASE_PRICES.items():
        trends = TRENDS.get(product, [""] * len(DATES))
        for fecha, base, trend in zip(DATES, prices, trends):
            rows.append(make_row(product, fecha, "bogota", base + base // 5, trend))
            rows.append(make_row(product, fecha, "medellin", base, trend))
            rows.append(make_row(product, fecha, "cali", base - base // 10, trend))
    # 只有最新一个周期的产品
    rows.append(make_row("aguacate hass", DATES[-1], "medellin", 8000))
    return rows


def sample_catalog():
    return [
        {
            "producto": "tomate chonto",
            "grupo_alimentos": "verduras y hortalizas",
            "codigo_grupo": 2,
            "precio_medio": 3200,
            "precio_anterior": 3200,
            "cambio_pct": 0,
            "fecha_inicio": DATES[-1],
        },
        {
            "producto": "papa criolla",
            "grupo_alimentos": "tubérculos, raíces y plátanos",
            "codigo_grupo": 1,
            "precio_medio": 3000,
            "precio_anterior": 2400,
            "cambio_pct": 25,
            "fecha_inicio": DATES[-1],
        },
    ]


# ─────────────────────────────────────────────────────────
# FakeSupabase
# ─────────────────────────────────────────────────────────

class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, client, table, columns):
        self._client = client
        self.table = table
        self.columns = columns
        self.filters = []
        self.order_by = None
        self.range_ = None
        self.limit_ = None

    def eq(self, column, value):
        self.filters.append(("eq", column, value))
        return self

    def in_(self, column, values):
        self.filters.append(("in", column, list(values)))
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def range(self, start, end):
        self.range_ = (start, end)
        return self

    def limit(self, size):
        self.limit_ = size
        return self

    def _match(self, row):
        for op, column, value in self.filters:
            if op == "eq" and row.get(column) != value:
                return False
            if op == "in" and row.get(column) not in value:
                return False
        return True

    async def execute(self):
        self._client.queries.append(self)
        if self._client.delay:
            await asyncio.sleep(self._client.delay)
        if self._client.error is not None:
            raise self._client.error

        rows = [r for r in self._client.rows if self._match(r)]
        if self.order_by:
            column, desc = self.order_by
            rows = sorted(rows, key=lambda r: str(r.get(column) or ""), reverse=desc)
        if self.range_:
            start, end = self.range_
            rows = rows[start:end + 1]
        if self.limit_ is not None:
            rows = rows[:self.limit_]
        if self.columns != "*":
            cols = [c.strip() for c in self.columns.split(",")]
            rows = [{c: r.get(c) for c in cols} for r in rows]
        return FakeResponse([dict(r) for r in rows])


class FakeTable:
    def __init__(self, client, name):
        self._client = client
        self._name = name

    def select(self, columns="*"):
        return FakeQuery(self._client, self._name, columns)


class FakeRpc:
    def __init__(self, client, name):
        self._client = client
        self.name = name

    async def execute(self):
        self._client.rpc_calls.append(self.name)
        if self._client.error is not None:
            raise self._client.error
        return FakeResponse([dict(r) for r in self._client.catalog])


class FakeSupabase:
    """只实现价格服务用到的 PostgREST 查询子集"""

    def __init__(self, rows=None, catalog=None):
        self.rows = list(rows or [])
        self.catalog = list(catalog or [])
        self.queries = []
        self.rpc_calls = []
        self.error = None
        self.delay = 0.0

    def table(self, name):
        return FakeTable(self, name)

    def rpc(self, name, params=None):
        return FakeRpc(self, name)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ─────────────────────────────────────────────────────────
# 夹具
# ─────────────────────────────────────────────────────────

@pytest.fixture
def fake_client():
    return FakeSupabase(rows=sample_rows(), catalog=sample_catalog())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def cache(storage, clock):
    return CacheLayer(storage, max_idle=3600, clock=clock)


@pytest.fixture
def acquisition(fake_client):
    return AcquisitionLayer(fake_client)


@pytest.fixture
def prices(cache, acquisition):
    return PriceDataService(cache, acquisition, ProcessingLayer(), ttl=3600)


@pytest.fixture
def market(prices):
    indicators = IndicatorLayer()
    return MarketService(prices, indicators, BusinessLayer(indicators))


@pytest.fixture
def row_factory():
    return make_row
