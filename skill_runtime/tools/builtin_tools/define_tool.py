"""
define_tool：运行时定义新工具（元工具）

执行逻辑：校验声明 → persistent=true 时落盘为 Skill 目录 → 注册到 Registry（立即可调用）
落盘的目录下次扫描时会被重新发现；非持久化工具只在当前进程内存活。
"""

import asyncio
from typing import Any

from skill_runtime.skills.models import ParameterSpec, ToolDeclaration
from skill_runtime.tools.authoring import LANGUAGE_CONVENTIONS, DynamicToolAuthor
from skill_runtime.tools.base import ResolvedTool

NAME = "define_tool"

DECLARATION = ToolDeclaration(
    name=NAME,
    description=(
        "定义一个新工具并立即注册，之后可以按名称调用。\n"
        "- code 是处理器函数体：python 为 async def handler(args) 的函数体，"
        "javascript 为 export default async function handler(args) 的函数体；"
        "通过 args[参数名] 读取参数，return 一个 JSON 值\n"
        "- persistent=true 时写入用户 Skill 目录（目录名为工具名的 _ 替换为 -），重启后仍可用\n"
        "- javascript 工具必须 persistent=true"
    ),
    parameters={
        "name": ParameterSpec(type="string", description="工具名，小写字母开头，仅含小写字母/数字/下划线"),
        "description": ParameterSpec(type="string", description="工具描述（给模型看）"),
        "parameters": ParameterSpec(
            type="object",
            description="参数定义：参数名 → {type, description, enum?, optional?}",
            optional=True,
        ),
        "code": ParameterSpec(type="string", description="处理器函数体源码"),
        "persistent": ParameterSpec(type="boolean", description="是否落盘，默认 false", optional=True),
        "language": ParameterSpec(
            type="string",
            description="处理器语言，默认取配置 AUTHOR_LANGUAGE",
            enum=list(LANGUAGE_CONVENTIONS),
            optional=True,
        ),
    },
)


def build_define_tool(author: DynamicToolAuthor) -> ResolvedTool:
    """绑定 author 的 define_tool 工具"""

    async def invoke(args: dict[str, Any]) -> Any:
        # 类型已由 Dispatcher 预检为布尔值
        persistent = args.get("persistent", False)
        # 落盘涉及文件 IO，放到线程中执行
        entry = await asyncio.to_thread(
            author.define,
            args["name"],
            args["description"],
            args.get("parameters"),
            args["code"],
            persistent=persistent,
            language=args.get("language"),
        )
        result: dict[str, Any] = {
            "name": entry.name,
            "origin": entry.origin.value,
            "skill": entry.source_skill_name,
            "persistent": persistent,
        }
        if persistent:
            result["path"] = str(author.root / entry.source_skill_name)
        return result

    return ResolvedTool(
        declaration=DECLARATION,
        source_skill="builtin",
        invoke=invoke,
        language="python",
    )
