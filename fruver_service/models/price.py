"""价格数据模型（数据源行结构在入口处校验为显式模型）"""

from datetime import date
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Trend = Optional[Literal["+++", "++", "+", "-", "--", "---", ""]]

TREND_VALUES = {
    "+++": 3,
    "++": 2,
    "+": 1,
    "-": -1,
    "--": -2,
    "---": -3,
    "": 0,
}

TREND_MAX = 3


def trend_value(trend: Optional[str]) -> int:
    """趋势符号 → 整数 [-3, 3]，空值 / 未知符号为 0"""
    return TREND_VALUES.get(trend or "", 0)


class PriceRecord(BaseModel):
    """一条周度价格观测：(产品, 市场, 周期起始日) 唯一"""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    product: str = Field(alias="producto")
    wholesale_market: Optional[str] = Field(default=None, alias="mercado_mayorista")
    market_name: Optional[str] = Field(default=None, alias="nombre_mercado")
    city: Optional[str] = Field(default=None, alias="ciudad")
    department: Optional[str] = Field(default=None, alias="departamento")
    min_price: Optional[float] = Field(default=None, alias="precio_minimo")
    avg_price: Optional[float] = Field(default=None, alias="precio_medio")
    max_price: Optional[float] = Field(default=None, alias="precio_maximo")
    trend: Trend = Field(default=None, alias="tendencia")
    period_start: date = Field(alias="fecha_inicio")
    period_end: Optional[date] = Field(default=None, alias="fecha_final")
    group_code: int = Field(default=0, alias="codigo_grupo")
    group_name: Optional[str] = Field(default=None, alias="grupo_alimentos")

    @field_validator("trend", mode="before")
    @classmethod
    def _unknown_trend_is_null(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v if v in TREND_VALUES else None

    @field_validator("group_code", mode="before")
    @classmethod
    def _null_group_is_zero(cls, v):
        return 0 if v is None else v


class PeriodDates(BaseModel):
    start: str
    end: str


class ProductPeriod(BaseModel):
    """某产品一个报告周期内的全部行；未找到时为空周期"""

    start: str = ""
    end: str = ""
    rows: List[PriceRecord] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "ProductPeriod":
        return cls(start="", end="", rows=[])


class SeriesPoint(BaseModel):
    label: str
    value: float


class HistoryRange(str, Enum):
    """历史序列区间"""

    ONE_MONTH = "1m"
    SIX_MONTHS = "6m"
    ONE_YEAR = "1y"
    MAX = "max"


class CatalogItem(BaseModel):
    product: str
    group_name: str = "desconocido"
    group_code: int = 0
    current_price: Optional[float] = None
    previous_price: Optional[float] = None
    change_pct: Optional[float] = None
    period_start: str = ""


class PeerPrice(BaseModel):
    """同一食品组内某产品的一条价格行"""

    model_config = ConfigDict(populate_by_name=True)

    product: str = Field(alias="producto")
    avg_price: Optional[float] = Field(default=None, alias="precio_medio")


class BasketValue(BaseModel):
    total: float = 0.0
    products_found: int = 0
    products_used: List[str] = Field(default_factory=list)
    period_start: str = ""


BASKET_BAR_LABELS = ["Actual", "Anterior", "Hace dos meses"]


class BasketBars(BaseModel):
    labels: List[str] = Field(default_factory=lambda: list(BASKET_BAR_LABELS))
    values: List[float] = Field(default_factory=lambda: [0.0, 0.0, 0.0])
    dates: List[Optional[str]] = Field(default_factory=lambda: [None, None, None])
