"""
SkillRuntime：调用方入口，组装 配置 → 执行策略 → Resolver → Registry → Dispatcher → Author

使用方式：
    runtime = SkillRuntime.from_settings()
    runtime.load()
    tools = runtime.list_tools()
    result = await runtime.call_tool("count_words", {"text": "..."})

三个对外操作：
- list_tools()  → [{name, description, parameters}]
- call_tool()   → {"result": ...} | {"error": "..."}
- get_catalog() → [(skill_name, description)]，供上层构建 Skill 列表提示
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable

import structlog

from skill_runtime.config import Settings, get_settings
from skill_runtime.observability import setup_logging
from skill_runtime.skills.loader import LoadReport, load_skill_roots
from skill_runtime.skills.metadata import split_frontmatter
from skill_runtime.skills.models import SkillUnit
from skill_runtime.tools.authoring import DynamicToolAuthor
from skill_runtime.tools.base import ToolResult
from skill_runtime.tools.builtin_tools import register_builtin_tools
from skill_runtime.tools.dispatcher import Dispatcher
from skill_runtime.tools.registry import ToolRegistry, get_tool_registry
from skill_runtime.tools.resolver import HandlerResolver
from skill_runtime.tools.strategies import StrategyTable, default_strategy_table

log = structlog.get_logger()


class SkillRuntime:
    """Skill 工具运行时"""

    def __init__(
        self,
        settings: Settings,
        registry: ToolRegistry,
        strategies: StrategyTable | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.resolver = HandlerResolver(
            strategies or default_strategy_table(settings),
            default_timeout_ms=settings.DEFAULT_TOOL_TIMEOUT_MS,
        )
        self.dispatcher = Dispatcher(registry, grace_ms=settings.DISPATCH_GRACE_MS)
        self.author = DynamicToolAuthor(
            settings.USER_SKILLS_DIR,
            registry,
            self.resolver,
            default_language=settings.AUTHOR_LANGUAGE,
            timeout_ms=settings.DEFAULT_TOOL_TIMEOUT_MS,
        )
        self._skills: dict[str, SkillUnit] = {}
        register_builtin_tools(registry, self.author)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        registry: ToolRegistry | None = None,
    ) -> "SkillRuntime":
        """默认使用全局配置与进程级 Registry；按配置初始化结构化日志"""
        settings = settings or get_settings()
        setup_logging(env=settings.ENV, level=settings.LOG_LEVEL)
        return cls(settings, registry or get_tool_registry())

    def load(self, roots: Iterable[Path] | None = None) -> LoadReport:
        """
        扫描并注册全部 Skill 工具；可重复调用（重新加载）。

        未指定 roots 时按配置顺序：内置 → SKILL_ROOTS → USER_SKILLS_DIR。
        上次加载发现、这次不再存在的工具会被移除；运行时定义的工具不受影响。
        """
        scan_roots = list(roots) if roots is not None else self.settings.skill_roots()
        log.info("开始加载 Skill", roots=[str(r) for r in scan_roots])
        report = load_skill_roots(scan_roots, self.registry, self.resolver, prune_stale=True)
        self._skills = dict(report.skills)
        return report

    # ── 调用方接口 ──

    def list_tools(self) -> list[dict[str, Any]]:
        return [listing.to_dict() for listing in self.registry.list()]

    def tool_schemas(self) -> list[dict[str, Any]]:
        """全部工具的 function calling schema（OpenAI 格式）"""
        return [entry.tool.declaration.to_function_schema() for entry in self.registry.entries()]

    async def dispatch(
        self,
        name: str,
        args: dict[str, Any] | None = None,
        *,
        work_dir: str | os.PathLike[str] | None = None,
    ) -> ToolResult:
        return await self.dispatcher.dispatch(name, args, work_dir=work_dir)

    async def call_tool(
        self,
        name: str,
        args: dict[str, Any] | None = None,
        *,
        work_dir: str | os.PathLike[str] | None = None,
    ) -> dict[str, Any]:
        return await self.dispatcher.call_tool(name, args, work_dir=work_dir)

    def get_catalog(self) -> list[tuple[str, str]]:
        """已加载 Skill 目录，每项为 (name, description) 二元组"""
        return [(unit.name, unit.description) for unit in self._skills.values()]

    def get_instructions(self, skill_name: str) -> str | None:
        """返回 Skill 的 SKILL.md 正文（不含 frontmatter），Skill 不存在时返回 None"""
        unit = self._skills.get(skill_name)
        if unit is None:
            return None
        try:
            raw = unit.instructions_path.read_text(encoding="utf-8")
        except OSError as e:
            log.warning("读取 SKILL.md 失败", skill=skill_name, error=str(e))
            return None
        parts = split_frontmatter(raw)
        return parts[1].strip() if parts is not None else raw.strip()
