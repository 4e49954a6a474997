from sqlalchemy import Column, Integer, String, Boolean
from datetime import datetime
from models.base import Base

class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True)
    # 用户名不做唯一约束 (与上游数据一致)，存在性判断走 exists_by_username
    username = Column(String(50), nullable=False, index=True)
    email = Column(String(100), nullable=False, unique=True)
    full_name = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(String, default=lambda: datetime.utcnow().isoformat())
