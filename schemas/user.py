from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional

class UserBase(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    full_name: str
    is_active: bool = True

class UserCreate(UserBase):
    pass

class UserDTO(UserBase):
    id: int
    created_at: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class UsernameRecord(BaseModel):
    """重建过滤器时分页读取的最小记录，只携带标识字段"""
    username: str

    model_config = ConfigDict(from_attributes=True)

class UserPage(BaseModel):
    """
    一页用户名记录。page 从 0 开始；total / total_pages 为读取该页时数据库的实时值。
    """
    items: List[UsernameRecord]
    total: int
    page: int
    page_size: int
    total_pages: int

    @property
    def records(self) -> List[UsernameRecord]:
        return self.items
