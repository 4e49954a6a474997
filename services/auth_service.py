"""
Auth Service
用户名存在性查询：先问布隆过滤器，只有 "可能存在" 时才访问数据库。
"""
import logging

from repositories.user_repo import UserRepository
from services.bloom_filter import UsernameBloomFilterService

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, user_repo: UserRepository, bloom_service: UsernameBloomFilterService) -> None:
        self.user_repo = user_repo
        self.bloom_service = bloom_service

    async def exists(self, username: str) -> bool:
        """用户名是否存在"""
        # 过滤器说一定不存在时直接返回，不访问数据库
        if not self.bloom_service.might_contain_username(username):
            logger.debug(f"Username rejected by Bloom filter: {username}")
            return False

        return await self.user_repo.exists_by_username(username)

    async def add_new(self, username: str) -> None:
        """登记一个新用户名到过滤器"""
        await self.bloom_service.add_username(username)
