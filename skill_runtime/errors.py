"""
错误分类：Skill 运行时全部异常

每个异常类名即错误类型（kind），Dispatcher 边界统一渲染为 "<kind>: <message>"。

作用域（由小到大）：
- 条目级：SkippableEntry → 跳过单个工具声明，记录警告
- 清单级：MalformedManifest / NotAnArray / DuplicateToolName → 整个 tools.json 作废，Skill 降级为纯指令
- 单元级：SkillNameMismatch → 跳过整个 Skill 目录
- 注册级：UnsafeScriptPath / UnsupportedHandlerLanguage / HandlerLoadError → 工具无法进入可调用状态
- 调用级：其余异常，Dispatcher 捕获后返回 {"error": ...}
"""

from enum import Enum
from pathlib import Path
from typing import Any


class ErrorCategory(str, Enum):
    """错误分类，用于日志聚合"""
    MANIFEST = "manifest"
    SCAN = "scan"
    RESOLUTION = "resolution"
    EXECUTION = "execution"
    DISPATCH = "dispatch"
    REGISTRY = "registry"
    AUTHORING = "authoring"


class SkillRuntimeError(Exception):
    """运行时异常基类：message + 上下文字典"""

    category: ErrorCategory = ErrorCategory.DISPATCH

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def render(self) -> str:
        """调用方可见的错误字符串"""
        return f"{self.kind}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": self.render(),
            "kind": self.kind,
            "category": self.category.value,
        }
        if self.context:
            result["context"] = self.context
        return result


# ── 清单校验 ──

class ManifestError(SkillRuntimeError):
    category = ErrorCategory.MANIFEST


class MalformedManifest(ManifestError):
    """tools.json 不是合法 JSON（或无法读取）"""


class NotAnArray(ManifestError):
    """tools.json 顶层不是数组"""

    def __init__(self, found_type: str) -> None:
        super().__init__(
            f"tools.json 顶层必须是数组，实际为 {found_type}",
            {"found_type": found_type},
        )


class DuplicateToolName(ManifestError):
    """同一清单内工具名重复，整个清单作废"""

    def __init__(self, name: str) -> None:
        self.tool_name = name
        super().__init__(f"清单内工具名重复：{name}", {"tool": name})


class SkippableEntry(ManifestError):
    """单个条目不合法：跳过该条目，不影响清单其余部分"""

    def __init__(self, index: int, reason: str, tool_name: str | None = None) -> None:
        self.index = index
        self.tool_name = tool_name
        self.reason = reason
        label = f"#{index}" if tool_name is None else f"#{index}（{tool_name}）"
        super().__init__(
            f"跳过条目 {label}：{reason}",
            {"index": index, "tool": tool_name},
        )


# ── 扫描 ──

class SkillNameMismatch(SkillRuntimeError):
    """SKILL.md 声明的 name 与目录名不一致"""

    category = ErrorCategory.SCAN

    def __init__(self, declared: str, directory: str) -> None:
        self.declared = declared
        self.directory = directory
        super().__init__(
            f"SKILL.md name '{declared}' 与目录名 '{directory}' 不一致",
            {"declared": declared, "directory": directory},
        )


# ── 处理器解析 ──

class ResolutionError(SkillRuntimeError):
    category = ErrorCategory.RESOLUTION


class UnsafeScriptPath(ResolutionError):
    """脚本路径逃逸出 Skill 目录"""

    def __init__(self, script: str, base_path: Path) -> None:
        super().__init__(
            f"脚本路径 '{script}' 超出 Skill 目录 {base_path}",
            {"script": script, "base_path": str(base_path)},
        )


class UnsupportedHandlerLanguage(ResolutionError):
    """没有与脚本扩展名（或目标语言）匹配的执行策略"""


class HandlerLoadError(ResolutionError):
    """处理器加载失败（文件缺失、编译错误、缺少 handler 函数）"""


# ── 处理器执行 ──

class HandlerError(SkillRuntimeError):
    category = ErrorCategory.EXECUTION


class HandlerExecutionError(HandlerError):
    """处理器抛出异常，或子进程以非零退出码结束"""

    def __init__(
        self,
        message: str,
        stderr: str = "",
        returncode: int | None = None,
    ) -> None:
        self.stderr = stderr
        self.returncode = returncode
        context: dict[str, Any] = {}
        if returncode is not None:
            context["returncode"] = returncode
        if stderr:
            context["stderr"] = stderr
        super().__init__(message, context)


class HandlerOutputError(HandlerError):
    """子进程成功退出但 stdout 为空或不是 JSON"""


class HandlerTimeout(HandlerError):
    """处理器执行超时（子进程已被终止）"""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"执行超时（{timeout_ms}ms）", {"timeout_ms": timeout_ms})


# ── 调用分发 ──

class DispatchError(SkillRuntimeError):
    category = ErrorCategory.DISPATCH


class ToolNotFound(DispatchError):
    def __init__(self, name: str) -> None:
        super().__init__(name, {"tool": name})


class MissingParameter(DispatchError):
    """缺少必填参数，处理器不会被调用"""

    def __init__(self, parameter: str) -> None:
        self.parameter = parameter
        super().__init__(parameter, {"parameter": parameter})


class InvalidParameterValue(DispatchError):
    """参数值与声明类型不符，或不在 enum 允许范围内"""

    def __init__(
        self,
        parameter: str,
        value: Any,
        allowed: list[Any] | None = None,
        expected_type: str | None = None,
    ) -> None:
        self.parameter = parameter
        detail = f"期望类型：{expected_type}" if expected_type is not None else f"允许值：{allowed!r}"
        super().__init__(
            f"{parameter}={value!r}，{detail}",
            {"parameter": parameter},
        )


# ── 注册中心 ──

class ProtectedToolError(SkillRuntimeError):
    """受保护工具（define_tool / remove_tool 等）不可移除或覆盖定义"""

    category = ErrorCategory.REGISTRY

    def __init__(self, name: str) -> None:
        super().__init__(f"工具 '{name}' 受保护，不可移除或重新定义", {"tool": name})


# ── 动态工具 ──

class AuthoringError(SkillRuntimeError):
    category = ErrorCategory.AUTHORING


class InvalidDerivedName(AuthoringError):
    """由工具名推导出的目录名不满足命名规则"""

    def __init__(self, tool_name: str, derived: str) -> None:
        super().__init__(
            f"工具名 '{tool_name}' 推导出的目录名 '{derived}' 不合法"
            "（仅小写字母/数字/单个连字符，首尾不可为连字符，≤64 字符）",
            {"tool": tool_name, "derived": derived},
        )


class SkillAlreadyExists(AuthoringError):
    """目标 Skill 目录已存在：拒绝合并，需先移除"""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Skill 目录已存在：{path}", {"path": str(path)})


class InvalidToolDefinition(AuthoringError):
    """define_tool 提交的声明无法通过校验"""
