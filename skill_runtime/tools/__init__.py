"""
工具系统：ResolvedTool + ToolRegistry 注册中心 + Dispatcher 调用分发

公共模块，Skill 扫描结果与运行时定义的工具共用同一个 Registry。
"""

from skill_runtime.tools.base import RegistryEntry, ResolvedTool, ToolOrigin, ToolResult
from skill_runtime.tools.registry import ToolRegistry, get_tool_registry

__all__ = [
    "RegistryEntry",
    "ResolvedTool",
    "ToolOrigin",
    "ToolResult",
    "ToolRegistry",
    "get_tool_registry",
]
