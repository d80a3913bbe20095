"""
工具层基础类型 + 标准化结果

ResolvedTool：绑定了执行能力的工具声明（由 HandlerResolver 产出，Registry 独占持有）
RegistryEntry：注册中心条目 = ResolvedTool + 来源信息（source skill / 序号 / origin）
ToolResult：Dispatcher 对外的标准化结果，只有两种形态：
- 成功: {"result": <JSON 值>}
- 失败: {"error": "<Kind>: <message>"}
"""

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from skill_runtime.skills.models import ParameterSpec, ToolDeclaration

# 执行能力：接收参数对象，返回 JSON 值（可能抛出 HandlerError）
Invoker = Callable[[dict[str, Any]], Awaitable[Any]]


class ToolOrigin(str, Enum):
    DISCOVERED = "discovered"
    RUNTIME_DEFINED = "runtime-defined"
    BUILTIN = "builtin"


@dataclass(frozen=True)
class ResolvedTool:
    """可调用的工具：声明 + 执行能力"""

    declaration: ToolDeclaration
    source_skill: str
    invoke: Invoker
    is_stub: bool = False
    script_path: Path | None = None
    language: str | None = None  # 执行策略名，stub 为 None
    timeout_ms: int = 30_000

    @property
    def name(self) -> str:
        return self.declaration.name

    @property
    def description(self) -> str:
        return self.declaration.description

    @property
    def parameters(self) -> dict[str, ParameterSpec]:
        return self.declaration.parameters


@dataclass(frozen=True)
class RegistryEntry:
    """注册中心条目；sequence 仅用于覆盖判定，单调递增"""

    tool: ResolvedTool
    source_skill_name: str
    sequence: int
    origin: ToolOrigin

    @property
    def name(self) -> str:
        return self.tool.name


@dataclass(frozen=True)
class ToolListing:
    """listTools() 的单项"""

    name: str
    description: str
    parameters: dict[str, dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}


@dataclass
class ToolResult:
    """工具调用标准化结果"""

    value: Any = None
    error: str | None = None
    # 内部错误类型（不对外暴露，供日志/观测区分传输层错误与处理器自报错误）
    error_kind: str | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {"result": self.value}

    def to_json(self) -> str:
        """序列化为 JSON 字符串（给 LLM 作为 tool result）"""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    @classmethod
    def success(cls, value: Any, duration_ms: int = 0) -> "ToolResult":
        """快捷构造成功结果"""
        return cls(value=value, duration_ms=duration_ms)

    @classmethod
    def fail(cls, error: str, kind: str, duration_ms: int = 0) -> "ToolResult":
        """快捷构造失败结果"""
        return cls(error=error, error_kind=kind, duration_ms=duration_ms)
