"""
可观测性：structlog 日志配置 + 调用上下文传播
"""

from skill_runtime.observability.context import dispatch_context, get_call_id, new_call_id
from skill_runtime.observability.logging_config import setup_logging

__all__ = ["dispatch_context", "get_call_id", "new_call_id", "setup_logging"]
