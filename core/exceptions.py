class BloomServiceError(Exception):
    """系统基础异常类"""
    def __init__(self, message: str, context: dict | None = None) -> None:
        super().__init__(message)
        self.context = context or {}

class TransientError(BloomServiceError):
    """
    瞬态错误（可降级 / 可重试）
    场景：Redis 不可达、存储超时
    """
    pass

class PermanentError(BloomServiceError):
    """
    永久错误（不可重试）
    场景：配置错误、持久化数据损坏
    """
    pass

class ConfigurationError(PermanentError):
    """启动期配置非法，进程必须拒绝启动"""
    pass

class StoreUnavailable(TransientError):
    """Blob 存储不可达或超时"""
    pass

class CorruptData(PermanentError):
    """持久化的过滤器字节无法解码为合法过滤器"""
    pass

class FilterNotReady(PermanentError):
    """启动对账完成之前调用了运行时接口"""
    pass
