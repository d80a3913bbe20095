"""
调用分发：工具名 + 参数对象 → {"result": ...} | {"error": "..."}

流程：
1. Registry 查找，未命中 → ToolNotFound（不触碰任何处理器）
2. 参数预检：必填参数缺失 → MissingParameter；类型不符或 enum 不匹配 → InvalidParameterValue
   预检失败直接返回，处理器不会被调用
3. 复制参数对象并注入 __workDir
4. 调用执行策略；策略自身负责超时与子进程终止，Dispatcher 另设兜底超时
5. 一切异常在此边界归一化为 {"error"}，调用方永远拿到一个 JSON 值

例外：asyncio.CancelledError 属于系统级中断，必须向上传播，不可吞掉。
"""

from __future__ import annotations

import asyncio
import os
import time
from typing import Any

import structlog

from skill_runtime.errors import (
    HandlerTimeout,
    InvalidParameterValue,
    MissingParameter,
    SkillRuntimeError,
    ToolNotFound,
)
from skill_runtime.observability.context import dispatch_context
from skill_runtime.skills.models import matches_type
from skill_runtime.tools.base import ResolvedTool, ToolResult
from skill_runtime.tools.registry import ToolRegistry
from skill_runtime.tools.strategies import WORK_DIR_KEY

log = structlog.get_logger()

# 处理器自报错误（返回 {"error": ...}）的内部类型标记
HANDLER_REPORTED_ERROR = "HandlerReportedError"


def check_arguments(tool: ResolvedTool, args: dict[str, Any]) -> None:
    """
    按 ParameterSpec 预检参数。

    Raises:
        MissingParameter: 非 optional 参数缺失
        InvalidParameterValue: 值与声明类型不符，或不在 enum 中
    """
    for name, spec in tool.parameters.items():
        if name not in args:
            if not spec.optional:
                raise MissingParameter(name)
            continue
        value = args[name]
        # 类型先于 enum 检查（True 不属于 number enum）
        if not matches_type(value, spec.type):
            raise InvalidParameterValue(name, value, expected_type=spec.type)
        if spec.enum is not None and value not in spec.enum:
            raise InvalidParameterValue(name, value, list(spec.enum))


def _is_reported_error(value: Any) -> bool:
    return isinstance(value, dict) and set(value) == {"error"}


class Dispatcher:
    """工具调用分发器"""

    def __init__(self, registry: ToolRegistry, grace_ms: int = 2_000) -> None:
        self._registry = registry
        self._grace_ms = grace_ms

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def dispatch(
        self,
        name: str,
        args: dict[str, Any] | None = None,
        *,
        work_dir: str | os.PathLike[str] | None = None,
    ) -> ToolResult:
        """执行一次工具调用，返回标准化 ToolResult"""
        resolved_dir = os.fspath(work_dir) if work_dir is not None else os.getcwd()
        with dispatch_context(name):
            start = time.monotonic()
            try:
                value = await self._invoke(name, args or {}, resolved_dir)
            except asyncio.CancelledError:
                log.warning("工具调用被取消")
                raise
            except SkillRuntimeError as e:
                duration_ms = int((time.monotonic() - start) * 1000)
                log.warning(
                    "工具调用失败",
                    kind=e.kind,
                    error=e.message,
                    duration_ms=duration_ms,
                    **e.context,
                )
                return ToolResult.fail(e.render(), e.kind, duration_ms)
            except Exception as e:
                duration_ms = int((time.monotonic() - start) * 1000)
                log.error("工具调用异常", error=str(e), duration_ms=duration_ms, exc_info=True)
                return ToolResult.fail(
                    f"HandlerExecutionError: {type(e).__name__}: {e}",
                    "HandlerExecutionError",
                    duration_ms,
                )

            duration_ms = int((time.monotonic() - start) * 1000)
            if _is_reported_error(value):
                log.info("处理器返回错误", error=str(value["error"]), duration_ms=duration_ms)
                return ToolResult.fail(str(value["error"]), HANDLER_REPORTED_ERROR, duration_ms)

            log.info("工具调用完成", duration_ms=duration_ms)
            return ToolResult.success(value, duration_ms)

    async def call_tool(
        self,
        name: str,
        args: dict[str, Any] | None = None,
        *,
        work_dir: str | os.PathLike[str] | None = None,
    ) -> dict[str, Any]:
        """调用方接口：只返回 {"result": ...} 或 {"error": "..."}"""
        result = await self.dispatch(name, args, work_dir=work_dir)
        return result.to_dict()

    async def _invoke(self, name: str, args: dict[str, Any], work_dir: str) -> Any:
        tool = self._registry.lookup(name)
        if tool is None:
            raise ToolNotFound(name)

        check_arguments(tool, args)

        call_args = dict(args)
        call_args[WORK_DIR_KEY] = work_dir

        # 兜底超时：正常情况下策略层超时先触发
        fallback_ms = tool.timeout_ms + self._grace_ms
        try:
            return await asyncio.wait_for(tool.invoke(call_args), timeout=fallback_ms / 1000)
        except asyncio.TimeoutError:
            log.warning("工具执行超时（Dispatcher 兜底）", timeout_ms=fallback_ms)
            raise HandlerTimeout(tool.timeout_ms) from None
