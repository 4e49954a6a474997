from models.base import Base, init_db
from models.user import User

__all__ = ["Base", "init_db", "User"]
