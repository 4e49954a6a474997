from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Any, List, Union
from pathlib import Path

import logging

# 设置日志
logger = logging.getLogger(__name__)

_BASE_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """应用配置类，使用Pydantic v2实现类型安全的配置管理"""

    # === 基础配置 ===
    APP_ENV: str = Field(
        default="development",
        description="应用环境: development, testing, production"
    )
    DEBUG: bool = Field(
        default=False,
        description="是否启用调试模式"
    )

    # === 项目路径配置 ===
    BASE_DIR: Path = Field(
        default_factory=lambda: _BASE_DIR,
        description="项目根目录"
    )
    LOG_DIR: Path = Field(
        default_factory=lambda: _BASE_DIR / "logs",
        description="日志文件存储目录"
    )

    # === 日志配置 ===
    LOG_LEVEL: str = Field(
        default="INFO",
        description="日志级别: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )
    LOG_FORMAT: str = Field(default="text")
    LOG_INCLUDE_TRACEBACK: bool = Field(default=False)
    LOG_COLOR: bool = Field(default=True)
    LOG_TO_FILE: bool = Field(default=True)
    LOG_MAX_BYTES: int = Field(default=10 * 1024 * 1024)
    LOG_BACKUP_COUNT: int = Field(default=5)
    LOG_MUTE_LOGGERS: Union[List[str], str] = Field(default=[])
    LOG_LEVEL_OVERRIDES: str = Field(default="")

    # === 数据库配置 ===
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///db/users.db",
        description="数据库连接URL"
    )
    DB_POOL_SIZE: int = Field(
        default=20,
        description="数据库连接池大小"
    )
    DB_MAX_OVERFLOW: int = Field(
        default=30,
        description="数据库连接池最大溢出连接数"
    )
    DB_ECHO: bool = Field(
        default=False,
        description="是否打印SQL语句"
    )

    # === 持久化存储 (Blob Store) ===
    BLOOM_STORE_BACKEND: str = Field(
        default="redis",
        description="过滤器持久化后端: redis, sqlite, memory"
    )
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis 连接 URL"
    )
    PERSIST_CACHE_SQLITE: Path = Field(
        default_factory=lambda: _BASE_DIR / "db" / "bloom_store.db",
        description="SQLite 持久化文件路径"
    )

    # === 布隆过滤器 ===
    BLOOM_EXPECTED_INSERTIONS: int = Field(
        default=10_000_000,
        description="预估用户名数量，用于计算位数组大小与哈希函数数量"
    )
    BLOOM_FALSE_POSITIVE_RATE: float = Field(
        default=0.01,
        description="目标假阳性率，越小位数组越大"
    )
    BLOOM_BATCH_SIZE: int = Field(
        default=10_000,
        description="重建时分页读取数据库的批大小"
    )
    BLOOM_PERSISTENCE_ENABLED: bool = Field(
        default=True,
        description="是否启用过滤器持久化；关闭时每次启动都从数据库重建"
    )
    BLOOM_PERSISTENCE_KEY: str = Field(
        default="bloom:filter:usernames",
        description="过滤器在存储中的键"
    )
    BLOOM_FORCE_REBUILD: bool = Field(
        default=False,
        description="启动时即使存在持久化数据也强制重建"
    )
    BLOOM_PERSIST_ON_ADD: bool = Field(
        default=False,
        description="每次新增用户名后立即持久化 (以延迟换取持久性)"
    )
    BLOOM_VERIFY_AFTER_PERSIST: bool = Field(
        default=True,
        description="保存后回读校验"
    )
    BLOOM_STORE_TIMEOUT: float = Field(
        default=5.0,
        description="单次存储读写超时 (秒)"
    )

    # === Web 服务 ===
    WEB_HOST: str = Field(default="0.0.0.0")
    WEB_PORT: int = Field(default=8080)

    # 模型配置 - Pydantic v2 语法
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=False,  # 允许在运行时修改配置 (测试中覆盖)
        title="应用配置",
    )

    @field_validator("LOG_MUTE_LOGGERS", mode="before")
    @classmethod
    def parse_list_fields(cls, v: Any) -> List[Any]:
        if isinstance(v, str):
            import json
            try:
                # 尝试 JSON 解析
                return list(json.loads(v))
            except json.JSONDecodeError:
                # 逗号分隔回退
                return [t.strip() for t in v.split(",") if t.strip()]
        return list(v)


# 单例模式获取配置 - 使用lru_cache确保全局只有一个实例
@lru_cache()
def get_settings() -> Settings:
    """获取配置实例，使用lru_cache实现单例模式"""
    return Settings()

# 全局配置实例，方便直接导入使用
settings = get_settings()
