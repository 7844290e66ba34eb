"""
Layer 2 – 缓存层
内存 TTL 缓存 + 同键并发请求合并 + 快照持久化

  cached(key, ttl, loader)
    1. 命中未过期的结果 → 直接返回，不调用 loader
    2. 同一 key 已有进行中的加载 → 等待同一个任务（请求合并）
    3. 否则启动 loader；成功后写入结果并持久化，失败则移除条目并向所有等待者抛出
       （仅当条目仍属于该加载任务时才写入或移除）

持久化快照只包含未过期的已完成条目，并附带"最后访问"时间戳；
启动时若距最后访问超过 max_idle，整个快照作废。
存储读写失败只记录日志，缓存退化为纯内存模式继续工作。
"""

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic_core import to_jsonable_python

from fruver_service.config import settings
from fruver_service.layers.storage import BaseStorage, MemoryStorage

logger = logging.getLogger(__name__)

STORAGE_KEY = "fruver_cache"
STORAGE_TIMESTAMP_KEY = "fruver_cache_timestamp"

_MISSING = object()


def make_key(namespace: str, *parts: Any) -> str:
    """生成规范化缓存键"""
    raw = ":".join([namespace] + [str(p) for p in parts])
    if len(raw) > 200:
        raw = namespace + ":" + hashlib.md5(raw.encode()).hexdigest()
    return raw


@dataclass
class CacheEntry:
    """value 与 in_flight 任一时刻只有一个有效"""

    expires_at: float
    value: Any = _MISSING
    in_flight: Optional["asyncio.Future"] = None

    @property
    def resolved(self) -> bool:
        return self.value is not _MISSING


class CacheLayer:
    """TTL 缓存层：通过构造注入存储后端和时钟，由应用生命周期负责 open / close"""

    def __init__(
        self,
        storage: Optional[BaseStorage] = None,
        max_idle: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._storage = storage or MemoryStorage()
        self._max_idle = settings.CACHE_MAX_IDLE if max_idle is None else max_idle
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._opened = False

    # ── 生命周期 ──────────────────────────────────────────

    def open(self) -> int:
        """从持久化存储恢复快照，返回恢复的条目数"""
        if self._opened:
            return 0
        self._opened = True
        return self._load_from_storage()

    def close(self) -> None:
        self._save_to_storage()
        self._opened = False

    # ── 基本读写 ──────────────────────────────────────────

    def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._store[key]
            return None
        self._touch()
        return entry.value if entry.resolved else None

    def set(self, key: str, value: Any, ttl: float) -> None:
        self._store[key] = CacheEntry(expires_at=self._clock() + ttl, value=value)
        self._save_to_storage()

    async def cached(
        self,
        key: str,
        ttl: float,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        """带 TTL 与请求合并的读取"""
        now = self._clock()
        existing = self._store.get(key)

        if existing is not None and now <= existing.expires_at:
            if existing.resolved:
                logger.debug(f"缓存命中: {key}")
                self._touch()
                return existing.value
            if existing.in_flight is not None:
                logger.debug(f"合并进行中的请求: {key}")
                self._touch()
                return await asyncio.shield(existing.in_flight)

        logger.info(f"缓存未命中: {key}，从数据源加载...")
        task = asyncio.ensure_future(self._run_loader(key, ttl, loader))
        self._store[key] = CacheEntry(expires_at=now + ttl, in_flight=task)
        # shield：调用方被取消时，加载任务仍然运行至结束
        return await asyncio.shield(task)

    async def _run_loader(
        self,
        key: str,
        ttl: float,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        try:
            value = await loader()
        except BaseException:
            if self._owns_entry(key):
                del self._store[key]
            raise
        # 条目已被 clear / invalidate 或更新的加载替换：只把结果交给本任务的等待者
        if self._owns_entry(key):
            self._store[key] = CacheEntry(expires_at=self._clock() + ttl, value=value)
            self._save_to_storage()
        else:
            logger.debug(f"加载结果已过时，不写入缓存: {key}")
        return value

    def _owns_entry(self, key: str) -> bool:
        current = self._store.get(key)
        return current is not None and current.in_flight is asyncio.current_task()

    def invalidate(self, key_prefix: str) -> int:
        """移除所有以 key_prefix 开头的条目，返回移除数量"""
        keys = [k for k in self._store if k.startswith(key_prefix)]
        for k in keys:
            del self._store[k]
        self._save_to_storage()
        logger.info(f"缓存失效: {key_prefix}*（{len(keys)} 条）")
        return len(keys)

    def clear(self) -> None:
        self._store.clear()
        try:
            self._storage.remove(STORAGE_KEY)
            self._storage.remove(STORAGE_TIMESTAMP_KEY)
        except Exception as exc:
            logger.warning(f"清理持久化缓存失败: {exc}")
        logger.info("缓存已全部清理")

    def stats(self) -> dict:
        now = self._clock()
        resolved = sum(1 for e in self._store.values() if e.resolved and e.expires_at >= now)
        in_flight = sum(1 for e in self._store.values() if e.in_flight is not None)
        return {
            "entries": len(self._store),
            "resolved": resolved,
            "in_flight": in_flight,
            "storage": self._storage.describe(),
        }

    def keys(self):
        return list(self._store.keys())

    # ── 持久化 ────────────────────────────────────────────

    def _touch(self) -> None:
        try:
            self._storage.set(STORAGE_TIMESTAMP_KEY, str(self._clock()))
        except Exception as exc:
            logger.debug(f"更新缓存访问时间失败: {exc}")

    def _load_from_storage(self) -> int:
        try:
            ts_raw = self._storage.get(STORAGE_TIMESTAMP_KEY)
            if not ts_raw:
                return 0

            now = self._clock()
            if now - float(ts_raw) > self._max_idle:
                logger.info(f"持久化缓存已闲置超过 {self._max_idle}s，丢弃快照")
                self._storage.remove(STORAGE_KEY)
                self._storage.remove(STORAGE_TIMESTAMP_KEY)
                return 0

            raw = self._storage.get(STORAGE_KEY)
            if not raw:
                return 0

            restored = 0
            for key, doc in json.loads(raw).items():
                expires_at = float(doc.get("expiresAt", 0))
                if expires_at > now:
                    self._store[key] = CacheEntry(expires_at=expires_at, value=doc.get("data"))
                    restored += 1
        except Exception as exc:
            logger.warning(f"读取持久化缓存失败: {exc}")
            return 0

        if restored:
            logger.info(f"从持久化存储恢复 {restored} 条缓存")
            self._touch()
        return restored

    def _save_to_storage(self) -> None:
        try:
            now = self._clock()
            snapshot = {
                key: {"expiresAt": entry.expires_at, "data": entry.value}
                for key, entry in self._store.items()
                if entry.resolved and entry.expires_at > now
            }
            serialized = json.dumps(to_jsonable_python(snapshot), ensure_ascii=False)
            self._storage.set(STORAGE_KEY, serialized)
            self._storage.set(STORAGE_TIMESTAMP_KEY, str(now))
        except Exception as exc:
            logger.warning(f"保存持久化缓存失败: {exc}")
