"""
测试全局 conftest.py
内存 SQLite + 内存 Blob 存储，所有测试互相隔离
"""
import sys
import os
from typing import List, Optional

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

# 确保项目根目录在 sys.path 最前面
_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from core.algorithms.bloom_sizing import FilterConfiguration
from core.cache.persistent_cache import BaseBlobStore, MemoryBlobStore
from core.database import Database
from models.base import init_db
from repositories.bloom_store import BloomFilterStore
from repositories.user_repo import UserRepository
from services.bloom_filter import BloomRuntimeSettings, UsernameBloomFilterService
from services.user_generation_service import build_sample_user
from tests.fakes import TEST_KEY


@pytest.fixture
async def database():
    """内存数据库 (StaticPool 保证所有会话共享同一连接)"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    db = Database(engine=engine)
    yield db
    await db.close()


@pytest.fixture
def user_repo(database):
    return UserRepository(database)


@pytest.fixture
def seed_users(user_repo):
    """seed_users(start, end) 写入 user_<start> .. user_<end>"""
    async def _seed(start: int, end: int) -> List[str]:
        return await user_repo.bulk_create_users(build_sample_user(i) for i in range(start, end + 1))
    return _seed


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def filter_config():
    return FilterConfiguration(expected_insertions=10_000, false_positive_rate=0.01)


@pytest.fixture
def make_runtime():
    def _make(**overrides) -> BloomRuntimeSettings:
        values = dict(batch_size=100, persistence_key=TEST_KEY)
        values.update(overrides)
        return BloomRuntimeSettings(**values)
    return _make


@pytest.fixture
def make_service(user_repo, blob_store, filter_config, make_runtime):
    """组装过滤器服务；可替换仓库与存储"""
    def _make(store: Optional[BaseBlobStore] = None, repo=None, **runtime_overrides) -> UsernameBloomFilterService:
        runtime = make_runtime(**runtime_overrides)
        filter_store = BloomFilterStore(
            store if store is not None else blob_store,
            verify_after_persist=runtime.verify_after_persist,
        )
        return UsernameBloomFilterService(repo or user_repo, filter_store, filter_config, runtime)
    return _make
