import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.routes.auth import router as auth_router
from api.routes.health import router as health_router
from core.exceptions import FilterNotReady
from core.lifecycle import LifecycleManager
from schemas.response import ResponseSchema

logger = logging.getLogger(__name__)


def create_app(lifecycle: Optional[LifecycleManager] = None, manage_lifecycle: bool = True) -> FastAPI:
    """
    构建 FastAPI 应用。
    manage_lifecycle=True 时由 lifespan 负责 start/stop (对账完成后才开始接受请求)；
    由 main.py 统一管理生命周期时传 False。
    """
    lifecycle = lifecycle or LifecycleManager.get_instance()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            await lifecycle.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await lifecycle.stop()

    app = FastAPI(title="Username Bloom Filter Service", lifespan=lifespan)
    app.state.container = lifecycle.container
    app.state.lifecycle = lifecycle

    @app.exception_handler(FilterNotReady)
    async def filter_not_ready_handler(request: Request, exc: FilterNotReady):
        logger.warning(f"Request rejected, filter not ready: {exc}")
        return JSONResponse(
            status_code=503,
            content=ResponseSchema(success=False, error=str(exc)).model_dump(),
        )

    app.include_router(auth_router)
    app.include_router(health_router)
    return app
