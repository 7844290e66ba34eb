"""
持久化存储后端
同步的字符串键值接口（get / set / remove），供缓存层保存快照
  - MemoryStorage : 进程内字典（测试 / 无持久化）
  - FileStorage   : 每个键一个本地文件
  - RedisStorage  : 同步 Redis 客户端
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Dict, Optional

from redis import Redis

from fruver_service.config import settings

logger = logging.getLogger(__name__)


class BaseStorage(ABC):
    """键值存储接口；实现可以抛出任意 I/O 异常，由缓存层负责吸收"""

    name = "base"

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...

    def describe(self) -> dict:
        return {"backend": self.name}


class MemoryStorage(BaseStorage):
    name = "memory"

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def describe(self) -> dict:
        return {"backend": self.name, "keys": len(self._data)}


class FileStorage(BaseStorage):
    name = "file"

    def __init__(self, cache_dir: str = None):
        self._dir = cache_dir or settings.CACHE_DIR

    def _path(self, key: str) -> str:
        safe = key.replace(":", "_").replace("/", "_")
        return os.path.join(self._dir, f"{safe}.json")

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as fh:
            return fh.read()

    def set(self, key: str, value: str) -> None:
        os.makedirs(self._dir, exist_ok=True)
        path = self._path(key)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as fh:
            fh.write(value)
        os.replace(tmp, path)

    def remove(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)

    def describe(self) -> dict:
        return {"backend": self.name, "dir": self._dir}


class RedisStorage(BaseStorage):
    name = "redis"

    def __init__(self, client: Redis):
        self._client = client

    def get(self, key: str) -> Optional[str]:
        raw = self._client.get(key)
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else raw

    def set(self, key: str, value: str) -> None:
        self._client.set(key, value)

    def remove(self, key: str) -> None:
        self._client.delete(key)

    def describe(self) -> dict:
        return {"backend": self.name, "host": settings.REDIS_HOST}


def build_storage(backend: str = None, redis_client: Optional[Redis] = None) -> BaseStorage:
    """根据配置选择存储后端；Redis 不可用时降级为文件存储"""
    backend = (backend or settings.CACHE_BACKEND).lower()
    if backend == "redis":
        if redis_client is not None:
            return RedisStorage(redis_client)
        logger.warning("⚠️ Redis 不可用，缓存持久化降级为文件模式")
        return FileStorage()
    if backend == "memory":
        return MemoryStorage()
    return FileStorage()
