"""
HTTP 路由测试（TestClient，不需要真实 Supabase / Redis）

生命周期中的外部连接全部 mock，启动后把 app.state 上的服务替换为基于 FakeSupabase 的实例
"""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

from fruver_service.config import FruverSettings
from fruver_service.layers.acquisition import AcquisitionLayer
from fruver_service.layers.cache import CacheLayer
from fruver_service.layers.storage import MemoryStorage
from fruver_service.models.response import ApiResponse
from fruver_service.services.market_service import MarketService
from fruver_service.services.price_service import PriceDataService

BASKET = "papa criolla,tomate chonto,inexistente"


@pytest.fixture
def client(fake_client):
    from fruver_service import main

    with patch.object(main, "init_supabase", new_callable=AsyncMock, return_value=False), \
         patch.object(main, "init_redis", return_value=False), \
         patch.object(main, "close_connections", new_callable=AsyncMock), \
         patch.object(main, "build_storage", return_value=MemoryStorage()):
        with TestClient(main.app) as c:
            cache = CacheLayer(MemoryStorage(), max_idle=3600)
            prices = PriceDataService(cache, AcquisitionLayer(fake_client), ttl=3600)
            main.app.state.cache = cache
            main.app.state.prices = prices
            main.app.state.market = MarketService(prices)
            yield c


# ─────────────────────────────────────────────────────────
# 1. 配置与响应模型
# ─────────────────────────────────────────────────────────

class TestConfig:
    def test_defaults(self):
        s = FruverSettings(_env_file=None)
        assert s.PORT == 8002
        assert s.CACHE_TTL == 3600
        assert s.PAGE_SIZE == 5000
        assert s.SUBSTITUTION_THRESHOLD_PCT == 20
        assert "papa criolla (amarilla)" in s.BASKET_PRODUCTS

    def test_env_override(self):
        with patch.dict(os.environ, {"CACHE_TTL": "60", "PRICE_TABLE": "precios"}):
            s = FruverSettings(_env_file=None)
        assert s.CACHE_TTL == 60
        assert s.PRICE_TABLE == "precios"

    def test_redis_url(self):
        s = FruverSettings(_env_file=None, REDIS_PASSWORD="secret", REDIS_HOST="cache", REDIS_PORT=6379)
        assert ":secret@cache:6379" in s.REDIS_URL
        s = FruverSettings(_env_file=None, REDIS_PASSWORD="")
        assert "@" not in s.REDIS_URL

    def test_docker_service_discovery(self):
        from fruver_service import config as cfg_module

        with patch.dict(os.environ, {"DOCKER_CONTAINER": "true"}):
            assert cfg_module._default_redis_host() == "redis"


class TestApiResponse:
    def test_ok(self):
        resp = ApiResponse.ok(data=[1], message="done")
        assert resp.success is True
        assert resp.data == [1]

    def test_from_api_error(self):
        resp = ApiResponse.from_error(APIError({"message": "permission denied"}), error="数据源查询失败")
        assert resp.success is False
        assert resp.message == "permission denied"
        assert resp.error == "数据源查询失败"

    def test_from_plain_error(self):
        resp = ApiResponse.from_error(ValueError("bad"), error="内部服务错误")
        assert resp.message == "bad"


# ─────────────────────────────────────────────────────────
# 2. 健康检查
# ─────────────────────────────────────────────────────────

class TestHealthRoutes:
    def test_health_endpoint(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["status"] == "ok"
        assert set(body["data"]["connections"]) == {"supabase", "redis"}
        assert body["data"]["cache"]["entries"] == 0

    def test_healthz_endpoint(self, client):
        resp = client.get("/healthz")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_readyz_without_datasource(self, client):
        assert client.get("/readyz").json()["ready"] is False

    def test_readyz_with_datasource(self, client):
        with patch("fruver_service.routers.health.get_supabase", return_value=MagicMock()):
            assert client.get("/readyz").json()["ready"] is True

    def test_root_endpoint(self, client):
        body = client.get("/").json()
        assert "version" in body
        assert "docs" in body

    def test_process_time_header(self, client):
        assert "X-Process-Time" in client.get("/healthz").headers


# ─────────────────────────────────────────────────────────
# 3. 产品路由
# ─────────────────────────────────────────────────────────

class TestProductRoutes:
    def test_catalog(self, client):
        body = client.get("/api/products").json()
        assert body["success"] is True
        assert body["data"]["count"] == 2
        assert body["data"]["products"][0]["product"] == "papa criolla"

    def test_names(self, client):
        body = client.get("/api/products/names").json()
        assert body["data"]["names"] == ["papa criolla", "tomate chonto"]

    def test_periods(self, client):
        body = client.get("/api/products/Papa Criolla/periods").json()
        data = body["data"]
        assert data["product"] == "papa criolla"
        assert len(data["dates"]) == 6
        assert data["current"]["start"] == "2024-03-08"
        assert len(data["current"]["rows"]) == 3
        assert data["previous"]["start"] == "2024-03-01"

    def test_series(self, client):
        body = client.get("/api/products/papa criolla/series", params={"range": "1m"}).json()
        assert body["data"]["range"] == "1m"
        assert [p["value"] for p in body["data"]["points"]] == [2200, 2300, 2400, 3000]

    def test_series_invalid_range(self, client):
        resp = client.get("/api/products/papa criolla/series", params={"range": "2w"})
        assert resp.status_code == 422

    def test_overview(self, client):
        resp = client.get("/api/products/papa criolla/overview")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["metrics"]["alert"] == "strong sell"
        assert data["substitution"]["alternative_product"] == "papa sabanera"
        assert data["indicators"]["inflation_proxy"] == pytest.approx(25)

    def test_overview_unknown_product(self, client):
        resp = client.get("/api/products/maracuyá/overview")
        assert resp.status_code == 404

    def test_catalog_category_filter(self, client):
        body = client.get("/api/products", params={"category": "verduras y hortalizas"}).json()
        assert [p["product"] for p in body["data"]["products"]] == ["tomate chonto"]

    def test_categories(self, client):
        body = client.get("/api/products/categories").json()
        assert body["data"]["categories"] == ["tubérculos, raíces y plátanos", "verduras y hortalizas"]

    def test_search(self, client):
        body = client.get("/api/products/search", params={"q": "Papa"}).json()
        assert [p["product"] for p in body["data"]["products"]] == ["papa criolla"]
        assert client.get("/api/products/search", params={"q": "p"}).json()["data"]["count"] == 0

    def test_overview_market_table(self, client):
        data = client.get("/api/products/papa criolla/overview").json()["data"]
        assert data["national_price"] == pytest.approx(3000)
        assert data["market_table"][0] == {"market": "cali, central · cali", "period_a": 2700, "period_b": 2160}

    def test_refresh(self, client):
        client.get("/api/products/papa criolla/periods")
        body = client.post("/api/products/papa criolla/refresh").json()
        assert body["data"]["removed"] == 3


# ─────────────────────────────────────────────────────────
# 4. 菜篮子路由
# ─────────────────────────────────────────────────────────

class TestBasketRoutes:
    def test_basket(self, client):
        body = client.get("/api/basket", params={"products": BASKET}).json()
        assert body["data"]["total"] == pytest.approx(6200)
        assert body["data"]["products_found"] == 2

    def test_basket_series(self, client):
        body = client.get("/api/basket/series", params={"products": BASKET, "weeks": 2}).json()
        assert [p["value"] for p in body["data"]["points"]] == [5600, 6200]

    def test_basket_series_weeks_bounds(self, client):
        resp = client.get("/api/basket/series", params={"weeks": 0})
        assert resp.status_code == 422

    def test_basket_bars(self, client):
        body = client.get("/api/basket/bars", params={"products": BASKET}).json()
        assert body["data"]["values"] == [6200, 5400, 5100]
        assert body["data"]["labels"] == ["Actual", "Anterior", "Hace dos meses"]

    def test_default_basket(self, client):
        resp = client.get("/api/basket")
        assert resp.status_code == 200
        # 默认菜篮子中有报价的：papa sabanera、tomate chonto、aguacate hass
        assert resp.json()["data"]["products_found"] == 3


# ─────────────────────────────────────────────────────────
# 5. 缓存管理与错误映射
# ─────────────────────────────────────────────────────────

class TestCacheRoutes:
    def test_stats(self, client):
        client.get("/api/products")
        body = client.get("/api/cache/stats").json()
        assert body["data"]["entries"] == 1
        assert body["data"]["storage"]["backend"] == "memory"

    def test_invalidate(self, client):
        client.get("/api/products/papa criolla/periods")
        body = client.post("/api/cache/invalidate", json={"prefix": "producto:papa criolla:"}).json()
        assert body["data"]["removed"] == 3

    def test_invalidate_requires_prefix(self, client):
        assert client.post("/api/cache/invalidate", json={"prefix": ""}).status_code == 422

    def test_clear(self, client):
        client.get("/api/products")
        assert client.post("/api/cache/clear").json()["success"] is True
        assert client.get("/api/cache/stats").json()["data"]["entries"] == 0


class TestErrorMapping:
    def test_remote_error_is_bad_gateway(self, client, fake_client):
        fake_client.error = APIError({"message": "permission denied", "code": "42501"})
        resp = client.get("/api/products")
        assert resp.status_code == 502
        body = resp.json()
        assert body["success"] is False
        assert body["message"] == "permission denied"
