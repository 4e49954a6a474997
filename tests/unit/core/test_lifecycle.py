from unittest.mock import AsyncMock, MagicMock

import pytest

from core.cache.persistent_cache import MemoryBlobStore
from core.config import Settings
from core.container import Container
from core.lifecycle import LifecycleManager
from services.bloom_filter import FilterState


@pytest.fixture
def container(database):
    settings = Settings(
        BLOOM_EXPECTED_INSERTIONS=1_000,
        BLOOM_BATCH_SIZE=50,
        BLOOM_STORE_BACKEND="memory",
    )
    return Container(settings=settings, db=database, blob_store=MemoryBlobStore())


@pytest.mark.asyncio
async def test_start_initializes_filter(container):
    lifecycle = LifecycleManager(container)
    await lifecycle.start()

    assert lifecycle.is_running
    assert container.bloom_service.state == FilterState.READY
    # 启动时存储为空: 重建后回写
    assert container.blob_store.get(container.runtime_settings.persistence_key) is not None

    container.close = AsyncMock()
    await lifecycle.stop()
    assert not lifecycle.is_running


@pytest.mark.asyncio
async def test_stop_is_idempotent(container):
    lifecycle = LifecycleManager(container)
    await lifecycle.start()

    container.bloom_service.shutdown = AsyncMock()
    container.close = AsyncMock()
    await lifecycle.stop()
    await lifecycle.stop()

    container.bloom_service.shutdown.assert_awaited_once()
    container.close.assert_awaited_once()
    assert lifecycle.stop_event.is_set()


@pytest.mark.asyncio
async def test_startup_failure_cleans_up(container):
    lifecycle = LifecycleManager(container)
    container.bloom_service.initialize = AsyncMock(side_effect=RuntimeError("boom"))
    container.close = AsyncMock()

    with pytest.raises(RuntimeError):
        await lifecycle.start()

    assert not lifecycle.is_running
    container.close.assert_awaited_once()


def test_shutdown_sets_exit_code():
    lifecycle = LifecycleManager(MagicMock())
    lifecycle.shutdown(exit_code=3)
    assert lifecycle.exit_code == 3
    assert lifecycle.stop_event.is_set()
