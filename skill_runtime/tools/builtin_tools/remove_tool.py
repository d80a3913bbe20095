"""
remove_tool：从 Registry 移除工具（元工具）

幂等：工具不存在时返回 removed=false，不报错。
受保护工具（define_tool / remove_tool）→ ProtectedToolError。
purge=true 时同时删除该工具由 define_tool 落盘的目录；手写 Skill 目录不受影响（purged=false）。
"""

import asyncio
from typing import Any

from skill_runtime.skills.models import ParameterSpec, ToolDeclaration
from skill_runtime.tools.authoring import DynamicToolAuthor
from skill_runtime.tools.base import ResolvedTool
from skill_runtime.tools.registry import ToolRegistry

NAME = "remove_tool"

DECLARATION = ToolDeclaration(
    name=NAME,
    description=(
        "按名称移除一个已注册的工具，移除后不可再调用。\n"
        "工具不存在时返回 removed=false。purge=true 会同时删除 define_tool 落盘的 Skill 目录"
        "（仅限本进程内由 define_tool 创建的目录，手写 Skill 不会被删除）。"
    ),
    parameters={
        "name": ParameterSpec(type="string", description="要移除的工具名"),
        "purge": ParameterSpec(type="boolean", description="是否删除落盘目录，默认 false", optional=True),
    },
)


def build_remove_tool(registry: ToolRegistry, author: DynamicToolAuthor) -> ResolvedTool:
    async def invoke(args: dict[str, Any]) -> Any:
        name = args["name"]
        # purge 依据移除前的条目判断目录是否由 define_tool 创建
        entry = registry.get_entry(name)
        # 先移除注册条目：受保护工具在这里抛错，不会触碰磁盘
        removed = registry.remove(name)
        purged = False
        if args.get("purge", False):
            purged = await asyncio.to_thread(author.purge, name, entry)
        return {"name": name, "removed": removed, "purged": purged}

    return ResolvedTool(
        declaration=DECLARATION,
        source_skill="builtin",
        invoke=invoke,
        language="python",
    )
