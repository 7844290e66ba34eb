"""
Fruver 数据服务配置模块
支持从环境变量读取配置，自动检测 Docker 容器环境并启用服务发现
"""

import os
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _is_docker() -> bool:
    """检测当前是否运行在 Docker 容器内"""
    return (
        os.path.exists("/.dockerenv")
        or os.environ.get("DOCKER_CONTAINER", "").lower() in ("1", "true", "yes")
    )


def _default_redis_host() -> str:
    """Docker 环境使用服务名 'redis'，本地使用 'localhost'"""
    return "redis" if _is_docker() else "localhost"


# 家庭基本菜篮子商品（不存在于数据库中的商品会被自动跳过）
DEFAULT_BASKET_PRODUCTS: List[str] = [
    # 蔬菜
    "acelga", "ajo", "ahuyama", "apio", "arveja verde en vaina", "berenjena", "brócoli", "calabaza",
    "cebolla cabezona blanca", "cebolla cabezona roja", "cebolla junca", "chócolo (mazorca)", "coliflor",
    "espinaca", "fríjol verde (cargamanto)", "habichuela", "lechuga batavia", "lechuga crespa",
    "pepino cohombro", "pimentón", "rábano rojo", "remolacha", "repollo blanco", "repollo morado",
    "tomate chonto", "tomate larga vida (milano)", "tomate riogrande", "zanahoria",
    # 水果
    "aguacate común", "aguacate hass", "aguacate papelillo", "banano criollo", "banano urabá", "coco",
    "curuba", "fresa", "granadilla", "guayaba pera", "limón común", "limón tahití", "lulo", "mandarina",
    "mango común", "mango tommy", "manzana (importada y nacional)", "maracuyá", "melón", "mora de castilla",
    "naranja valencia", "naranja sweet", "papaya maradol", "pera", "piña gold", "piña perolera",
    "pitahaya", "sandía", "tomate de árbol", "uva (isabela, red globe)",
    # 块茎、根茎与大蕉
    "arracacha amarilla", "arracacha blanca", "ñame diamante", "ñame espino", "papa criolla (amarilla)",
    "papa negra (capira)", "papa parda pastusa", "papa r-12", "papa rubí", "papa sabanera", "papa suprema",
    "papa única", "plátano guineo", "plátano hartón maduro", "plátano hartón verde", "ulluco",
    "yuca chirosa", "yuca llanera",
]


class FruverSettings(BaseSettings):
    """Fruver 数据服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8002)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── Supabase 数据源配置 ────────────────────────────────
    SUPABASE_URL: str = Field(default="")
    SUPABASE_KEY: str = Field(default="")
    SUPABASE_ENABLED: bool = Field(default=True)
    PRICE_TABLE: str = Field(default="fruver_data")
    CATALOG_RPC: str = Field(default="get_productos_catalogo")
    PAGE_SIZE: int = Field(default=5000)             # 单页最大行数
    MAX_PAGES: int = Field(default=500)              # 分页拉取的页数上限
    GLOBAL_DATES_SCAN_LIMIT: int = Field(default=10000)
    BARS_DATES_SCAN_LIMIT: int = Field(default=2500)
    BASKET_ROW_LIMIT: int = Field(default=50000)

    # ── Redis 配置（支持服务发现） ─────────────────────────
    REDIS_HOST: str = Field(default_factory=_default_redis_host)
    REDIS_PORT: int = Field(default=6379)
    REDIS_PASSWORD: str = Field(default="")
    REDIS_DB: int = Field(default=0)
    REDIS_ENABLED: bool = Field(default=False)

    @property
    def REDIS_URL(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── 缓存配置 ──────────────────────────────────────────
    CACHE_TTL: int = Field(default=3600)             # 数据每周更新，统一缓存 1 小时
    CACHE_MAX_IDLE: int = Field(default=3600)        # 快照最长闲置时间（秒）
    CACHE_BACKEND: str = Field(default="file")       # memory / file / redis
    CACHE_DIR: str = Field(default="./cache")        # 文件缓存目录

    # ── 业务参数 ──────────────────────────────────────────
    ARBITRAGE_REFERENCE_CITY: str = Field(default="bogota")
    TRANSPORT_COST_PCT: float = Field(default=15.0)
    SAFETY_MARGIN_PCT: float = Field(default=10.0)
    SUBSTITUTION_THRESHOLD_PCT: float = Field(default=20.0)
    BASKET_PRODUCTS: List[str] = Field(default_factory=lambda: list(DEFAULT_BASKET_PRODUCTS))
    BASKET_SERIES_WEEKS: int = Field(default=13)

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")
    TZ: str = Field(default="America/Bogota")


@lru_cache
def get_settings() -> FruverSettings:
    """获取全局配置（单例）"""
    return FruverSettings()


settings = get_settings()
