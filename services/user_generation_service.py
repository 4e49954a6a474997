"""
User Generation Service
批量生成示例用户 (开发 / 压测数据)，并把每个用户名登记到布隆过滤器。
"""
import logging
from typing import List

from repositories.user_repo import UserRepository
from schemas.user import UserCreate
from services.bloom_filter import UsernameBloomFilterService

logger = logging.getLogger(__name__)


def build_sample_user(i: int) -> UserCreate:
    return UserCreate(
        username=f"user_{i}",
        email=f"user_{i}@example.com",
        full_name=f"User {i}",
    )


class UserGenerationService:
    def __init__(
        self,
        user_repo: UserRepository,
        bloom_service: UsernameBloomFilterService,
        batch_size: int = 10_000,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.user_repo = user_repo
        self.bloom_service = bloom_service
        self.batch_size = batch_size

    async def generate_users(self, start: int, end: int) -> int:
        """生成 user_<start> .. user_<end> (含两端)，每 batch_size 条提交一次，返回生成数量"""
        if end < start:
            raise ValueError(f"end ({end}) must not be smaller than start ({start})")

        created = 0
        batch: List[UserCreate] = []
        for i in range(start, end + 1):
            batch.append(build_sample_user(i))
            if len(batch) >= self.batch_size:
                created += await self._flush(batch)
                batch = []
                logger.info(f"Inserted {created} users")
        if batch:
            created += await self._flush(batch)

        logger.info(f"User generation complete: {created} users ({start}..{end})")
        return created

    async def _flush(self, batch: List[UserCreate]) -> int:
        usernames = await self.user_repo.bulk_create_users(batch)
        for name in usernames:
            await self.bloom_service.add_username(name)
        return len(usernames)
