"""
扫描 → 解析 → 注册 流水线

多目录加载：
- load_skill_roots([builtin_dir, ..., user_dir]) 按顺序扫描
- 同名 Skill 后加载的取代先加载的（用户目录 > 内置目录）：
  新单元声明的工具按 last-write-wins 覆盖；旧单元的工具若未被新单元成功注册（未声明或解析失败）则移除
- 单个工具解析失败（路径逃逸 / 不支持的语言 / 加载失败）只跳过该工具

注册顺序：根目录顺序 → 目录名顺序 → tools.json 数组顺序。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

import structlog

from skill_runtime.errors import ProtectedToolError, ResolutionError
from skill_runtime.skills.models import ScannedSkill, SkillUnit
from skill_runtime.skills.scanner import scan_skill_roots
from skill_runtime.tools.base import ToolOrigin
from skill_runtime.tools.registry import ToolRegistry
from skill_runtime.tools.resolver import HandlerResolver

log = structlog.get_logger()


@dataclass
class LoadReport:
    """一次加载的结果汇总"""

    skills: dict[str, SkillUnit] = field(default_factory=dict)  # 生效的 Skill（已处理覆盖）
    registered: list[str] = field(default_factory=list)  # 按注册顺序，可能含重复（被覆盖）
    failed: dict[str, str] = field(default_factory=dict)  # tool → 错误
    removed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def tool_count(self) -> int:
        return len(set(self.registered))


def _remove_discovered(registry: ToolRegistry, name: str, skill_name: str | None = None) -> bool:
    """只移除仍然由扫描产生（且属于指定 Skill）的条目，运行时定义的工具不受影响"""
    entry = registry.get_entry(name)
    if entry is None or entry.origin is not ToolOrigin.DISCOVERED:
        return False
    if skill_name is not None and entry.source_skill_name != skill_name:
        return False
    try:
        return registry.remove(name)
    except ProtectedToolError:
        return False


def register_scanned(
    scanned_skills: Iterable[ScannedSkill],
    registry: ToolRegistry,
    resolver: HandlerResolver,
    *,
    prune_stale: bool = False,
) -> LoadReport:
    """
    把扫描结果依次注册进 Registry。

    prune_stale=True 时，加载前已存在、本次未再被发现的 discovered 工具会被移除
    （用于重新加载）。
    """
    report = LoadReport()
    previous_discovered = {
        entry.name
        for entry in registry.entries()
        if entry.origin is ToolOrigin.DISCOVERED
    }
    tools_by_skill: dict[str, list[str]] = {}

    for scanned in scanned_skills:
        unit = scanned.unit
        report.warnings.extend(f"{unit.name}: {w}" for w in scanned.warnings)

        superseded_tools: list[str] = []
        if unit.name in report.skills:
            superseded = report.skills[unit.name]
            superseded_tools = tools_by_skill.get(unit.name, [])
            log.info(
                "Skill 同名覆盖",
                skill=unit.name,
                previous=str(superseded.base_path),
                current=str(unit.base_path),
            )
        report.skills[unit.name] = unit
        tools_by_skill[unit.name] = []

        for declaration in scanned.declarations:
            if registry.is_protected(declaration.name):
                log.warning("工具名与受保护工具冲突，跳过", skill=unit.name, tool=declaration.name)
                report.failed[declaration.name] = ProtectedToolError(declaration.name).render()
                continue
            try:
                tool = resolver.resolve(
                    declaration,
                    unit.base_path,
                    source_skill=unit.name,
                    timeout_ms=unit.timeout_ms,
                )
            except ResolutionError as e:
                log.warning(
                    "工具处理器解析失败，跳过",
                    skill=unit.name,
                    tool=declaration.name,
                    error=e.render(),
                )
                report.failed[declaration.name] = e.render()
                continue

            registry.register(tool, unit.name, ToolOrigin.DISCOVERED)
            report.registered.append(declaration.name)
            report.failed.pop(declaration.name, None)
            tools_by_skill[unit.name].append(declaration.name)

        # 被取代单元的工具：新单元未成功注册同名工具的一律移除（含重新声明但解析失败的）
        replaced = set(tools_by_skill[unit.name])
        for tool_name in superseded_tools:
            if tool_name not in replaced and _remove_discovered(registry, tool_name, unit.name):
                report.removed.append(tool_name)
                report.registered = [n for n in report.registered if n != tool_name]

    if prune_stale:
        for name in sorted(previous_discovered - set(report.registered)):
            if _remove_discovered(registry, name):
                report.removed.append(name)

    log.info(
        "Skill 加载完成",
        skills=len(report.skills),
        tools=report.tool_count,
        failed=len(report.failed),
        removed=len(report.removed),
    )
    return report


def load_skill_roots(
    roots: Iterable[Path],
    registry: ToolRegistry,
    resolver: HandlerResolver,
    *,
    prune_stale: bool = False,
) -> LoadReport:
    """扫描根目录并注册全部工具"""
    return register_scanned(scan_skill_roots(roots), registry, resolver, prune_stale=prune_stale)
