from sqlalchemy import select, func, exists
from models.user import User
from schemas.user import UserDTO, UserCreate, UsernameRecord, UserPage
from typing import Iterable, List, Optional
import logging
import math

logger = logging.getLogger(__name__)

class UserRepository:
    def __init__(self, db):
        self.db = db

    async def count(self) -> int:
        """用户总数"""
        async with self.db.get_session() as session:
            result = await session.execute(select(func.count(User.id)))
            return result.scalar() or 0

    async def find_page(self, page_index: int, page_size: int) -> UserPage:
        """
        按主键顺序分页读取用户名 (page_index 从 0 开始)。
        只读取标识字段，避免整行加载。
        """
        if page_index < 0 or page_size <= 0:
            raise ValueError(f"Invalid page request: page_index={page_index}, page_size={page_size}")

        async with self.db.get_session() as session:
            total = (await session.execute(select(func.count(User.id)))).scalar() or 0
            stmt = (
                select(User.username)
                .order_by(User.id.asc())
                .offset(page_index * page_size)
                .limit(page_size)
            )
            rows = (await session.execute(stmt)).scalars().all()

        return UserPage(
            items=[UsernameRecord(username=name) for name in rows],
            total=total,
            page=page_index,
            page_size=page_size,
            total_pages=math.ceil(total / page_size),
        )

    async def exists_by_username(self, username: str) -> bool:
        """精确存在性检查"""
        async with self.db.get_session() as session:
            stmt = select(exists().where(User.username == username))
            result = await session.execute(stmt)
            return bool(result.scalar())

    async def get_user_by_username(self, username: str) -> Optional[UserDTO]:
        """根据用户名获取用户"""
        async with self.db.get_session() as session:
            stmt = select(User).filter(User.username == username).order_by(User.id.asc()).limit(1)
            result = await session.execute(stmt)
            obj = result.scalar_one_or_none()
            return UserDTO.model_validate(obj) if obj else None

    async def create_user(self, data: UserCreate) -> UserDTO:
        """创建用户"""
        async with self.db.get_session() as session:
            user = User(
                username=data.username,
                email=data.email,
                full_name=data.full_name,
                is_active=data.is_active,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return UserDTO.model_validate(user)

    async def bulk_create_users(self, users: Iterable[UserCreate]) -> List[str]:
        """批量创建用户 (单事务)，返回写入的用户名"""
        async with self.db.get_session() as session:
            rows = [
                User(
                    username=u.username,
                    email=u.email,
                    full_name=u.full_name,
                    is_active=u.is_active,
                )
                for u in users
            ]
            session.add_all(rows)
            await session.commit()
            return [r.username for r in rows]
