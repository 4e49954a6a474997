"""持久化 Blob 存储：支持 Redis（优先）或本地 SQLite 文件作为后端。

用法：
    store = get_blob_store()
    store.set("key", b"...")
    blob = store.get("key")   # 不存在时返回 None

所有后端在无法连接或超时时抛出 StoreUnavailable，调用方据此降级。
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlparse

import redis

from core.exceptions import ConfigurationError, StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_REDIS_PORT = 6379


class BaseBlobStore:
    """不透明的 key -> bytes 存储"""

    def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def set(self, key: str, value: bytes) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    @property
    def endpoint(self) -> str:
        """用于日志的端点描述"""
        return self.__class__.__name__

    def close(self) -> None:
        pass


def describe_redis_url(url: str) -> str:
    """从 Redis URL 提取 host:port，解析失败时原样返回"""
    try:
        parsed = urlparse(url)
        if not parsed.hostname:
            return url
        return f"{parsed.hostname}:{parsed.port or DEFAULT_REDIS_PORT}"
    except ValueError:
        logger.debug(f"Failed to parse Redis URL: {url}", exc_info=True)
        return url


class RedisBlobStore(BaseBlobStore):
    def __init__(self, url: str, timeout: float = 5.0) -> None:
        self._url = url
        self._client = redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )

    @property
    def endpoint(self) -> str:
        return describe_redis_url(self._url)

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self._client.get(key)
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as e:
            raise StoreUnavailable(
                f"Redis unreachable at {self.endpoint}: {e}", {"endpoint": self.endpoint}
            ) from e

    def set(self, key: str, value: bytes) -> None:
        try:
            self._client.set(key, value)
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as e:
            raise StoreUnavailable(
                f"Redis unreachable at {self.endpoint}: {e}", {"endpoint": self.endpoint}
            ) from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as e:
            raise StoreUnavailable(
                f"Redis unreachable at {self.endpoint}: {e}", {"endpoint": self.endpoint}
            ) from e

    def close(self) -> None:
        self._client.close()


class SQLiteBlobStore(BaseBlobStore):
    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        self._db_path = db_path
        self._timeout = timeout
        self._schema_ready = False

    @property
    def endpoint(self) -> str:
        return f"sqlite:{self._db_path}"

    def _conn(self) -> sqlite3.Connection:
        try:
            if not self._schema_ready:
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self._db_path, timeout=self._timeout)
            cur = conn.cursor()
            cur.execute(f"PRAGMA busy_timeout={int(self._timeout * 1000)}")
            cur.execute("PRAGMA journal_mode=WAL")
            cur.execute("PRAGMA synchronous=NORMAL")
            if not self._schema_ready:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS blob_store (
                        key TEXT PRIMARY KEY,
                        value BLOB NOT NULL
                    )
                    """
                )
                conn.commit()
                self._schema_ready = True
            return conn
        except (OSError, sqlite3.Error) as e:
            raise StoreUnavailable(
                f"SQLite store unavailable at {self._db_path}: {e}", {"endpoint": self.endpoint}
            ) from e

    def get(self, key: str) -> Optional[bytes]:
        conn = self._conn()
        try:
            row = conn.execute("SELECT value FROM blob_store WHERE key = ?", (key,)).fetchone()
            return bytes(row[0]) if row else None
        except sqlite3.OperationalError as e:
            # 锁等待超时等
            raise StoreUnavailable(f"SQLite read failed: {e}", {"endpoint": self.endpoint}) from e
        finally:
            conn.close()

    def set(self, key: str, value: bytes) -> None:
        conn = self._conn()
        try:
            conn.execute(
                "REPLACE INTO blob_store(key, value) VALUES (?, ?)",
                (key, sqlite3.Binary(value)),
            )
            conn.commit()
        except sqlite3.OperationalError as e:
            raise StoreUnavailable(f"SQLite write failed: {e}", {"endpoint": self.endpoint}) from e
        finally:
            conn.close()

    def delete(self, key: str) -> None:
        conn = self._conn()
        try:
            conn.execute("DELETE FROM blob_store WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.OperationalError as e:
            raise StoreUnavailable(f"SQLite delete failed: {e}", {"endpoint": self.endpoint}) from e
        finally:
            conn.close()


class MemoryBlobStore(BaseBlobStore):
    """进程内存储，进程退出即丢失；用于关闭持久化的部署与测试"""

    def __init__(self) -> None:
        self._data: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    @property
    def endpoint(self) -> str:
        return "memory"

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


def create_blob_store(backend: str, redis_url: str, sqlite_path: str, timeout: float) -> BaseBlobStore:
    backend = (backend or "redis").lower()
    if backend == "redis":
        # redis.from_url 不会立即建立连接，连接失败在首次读写时以 StoreUnavailable 体现
        return RedisBlobStore(redis_url, timeout=timeout)
    if backend == "sqlite":
        return SQLiteBlobStore(sqlite_path, timeout=timeout)
    if backend == "memory":
        return MemoryBlobStore()
    raise ConfigurationError(f"Unknown blob store backend: {backend}")


def get_blob_store() -> BaseBlobStore:
    from core.config import settings

    return create_blob_store(
        settings.BLOOM_STORE_BACKEND,
        settings.REDIS_URL,
        str(settings.PERSIST_CACHE_SQLITE),
        settings.BLOOM_STORE_TIMEOUT,
    )
