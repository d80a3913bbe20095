"""
处理器解析：ToolDeclaration + Skill 目录 → ResolvedTool

只准备调用能力，不执行处理器：
- 未声明 script → stub 工具，调用时固定返回指引信息（指向 SKILL.md），不做任何 IO
- script 必须位于 Skill 目录内（拒绝 ../ 与绝对路径逃逸）→ UnsafeScriptPath
- 扩展名决定执行策略 → UnsupportedHandlerLanguage
- 进程内策略在此处加载模块 → HandlerLoadError 在注册阶段暴露，不拖到首次调用
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog

from skill_runtime.errors import HandlerLoadError, UnsafeScriptPath
from skill_runtime.skills.metadata import INSTRUCTIONS_FILENAME
from skill_runtime.skills.models import ToolDeclaration
from skill_runtime.tools.base import Invoker, ResolvedTool
from skill_runtime.tools.strategies import StrategyTable

log = structlog.get_logger()


def resolve_script_path(base_path: Path, script: str) -> Path:
    """拼接并校验脚本路径，结果必须仍在 base_path 之内"""
    base = base_path.resolve()
    if Path(script).is_absolute():
        raise UnsafeScriptPath(script, base)
    candidate = (base / script).resolve()
    if base not in candidate.parents:
        raise UnsafeScriptPath(script, base)
    return candidate


def stub_payload(declaration: ToolDeclaration, source_skill: str, base_path: Path) -> dict[str, Any]:
    """stub 工具的固定返回内容"""
    return {
        "stub": True,
        "message": (
            f"工具 '{declaration.name}' 没有处理器脚本，"
            f"请按照 Skill '{source_skill}' 的 {INSTRUCTIONS_FILENAME} 说明完成操作。"
        ),
        "skill": source_skill,
        "instructions": str(base_path / INSTRUCTIONS_FILENAME),
    }


def _stub_invoker(payload: dict[str, Any]) -> Invoker:
    async def invoke(args: dict[str, Any]) -> Any:
        return dict(payload)

    return invoke


class HandlerResolver:
    """按 StrategyTable 为工具声明绑定执行能力"""

    def __init__(self, strategies: StrategyTable, default_timeout_ms: int = 30_000) -> None:
        self._strategies = strategies
        self._default_timeout_ms = default_timeout_ms

    @property
    def strategies(self) -> StrategyTable:
        return self._strategies

    def resolve(
        self,
        declaration: ToolDeclaration,
        skill_base_path: Path,
        *,
        source_skill: str | None = None,
        timeout_ms: int | None = None,
    ) -> ResolvedTool:
        """
        Raises:
            UnsafeScriptPath / UnsupportedHandlerLanguage / HandlerLoadError
        """
        source = source_skill or skill_base_path.name
        timeout = timeout_ms or self._default_timeout_ms

        if declaration.script is None:
            log.debug("stub 工具", tool=declaration.name, skill=source)
            return ResolvedTool(
                declaration=declaration,
                source_skill=source,
                invoke=_stub_invoker(stub_payload(declaration, source, skill_base_path)),
                is_stub=True,
                timeout_ms=timeout,
            )

        script_path = resolve_script_path(skill_base_path, declaration.script)
        # 扩展名检查先于文件存在性检查
        factory = self._strategies.factory_for(script_path)
        if not script_path.is_file():
            raise HandlerLoadError(f"处理器脚本不存在：{script_path}")

        strategy = factory(script_path, timeout)
        log.debug(
            "工具处理器已解析",
            tool=declaration.name,
            skill=source,
            language=strategy.language,
            script=str(script_path),
        )
        return ResolvedTool(
            declaration=declaration,
            source_skill=source,
            invoke=strategy.invoke,
            is_stub=False,
            script_path=script_path,
            language=strategy.language,
            timeout_ms=timeout,
        )
