"""
内置元工具：define_tool / remove_tool

使用方式：
    from skill_runtime.tools.builtin_tools import register_builtin_tools
    register_builtin_tools(registry, author)

两者以 origin=builtin 注册并加入受保护集合，remove_tool 无法移除它们。
"""

from skill_runtime.tools.authoring import DynamicToolAuthor
from skill_runtime.tools.base import RegistryEntry, ToolOrigin
from skill_runtime.tools.builtin_tools.define_tool import build_define_tool
from skill_runtime.tools.builtin_tools.remove_tool import build_remove_tool
from skill_runtime.tools.registry import ToolRegistry

BUILTIN_SOURCE = "builtin"


def register_builtin_tools(registry: ToolRegistry, author: DynamicToolAuthor) -> list[RegistryEntry]:
    """注册全部元工具并设为受保护"""
    entries = []
    for tool in (build_define_tool(author), build_remove_tool(registry, author)):
        entries.append(registry.register(tool, BUILTIN_SOURCE, ToolOrigin.BUILTIN))
        registry.protect(tool.name)
    return entries
