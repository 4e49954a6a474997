"""
Auth API Endpoints
用户名存在性查询与登记，直接透传到 AuthService
"""
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
import logging

from schemas.response import ResponseSchema
from services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class UsernameRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.container.auth_service


@router.get("/exists", response_model=ResponseSchema[bool])
async def username_exists(
    username: str = Query(..., min_length=1, max_length=50),
    auth_service: AuthService = Depends(get_auth_service),
):
    """检查用户名是否存在"""
    return ResponseSchema(success=True, data=await auth_service.exists(username))


@router.post("/usernames", response_model=ResponseSchema[None])
async def add_username(
    body: UsernameRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """登记新用户名到过滤器"""
    await auth_service.add_new(body.username)
    return ResponseSchema(success=True, message=f"用户名 {body.username} 已登记")
