"""Pytest fixtures：临时 Skill 目录树 + 独立的 Registry / Resolver / Runtime"""

import json
import shutil
from pathlib import Path
from typing import Any, Callable

import pytest

from skill_runtime.config import Settings
from skill_runtime.runtime import SkillRuntime
from skill_runtime.skills.models import ParameterSpec, ToolDeclaration
from skill_runtime.tools.authoring import DynamicToolAuthor
from skill_runtime.tools.base import ResolvedTool
from skill_runtime.tools.dispatcher import Dispatcher
from skill_runtime.tools.registry import ToolRegistry
from skill_runtime.tools.resolver import HandlerResolver
from skill_runtime.tools.strategies import InProcessStrategy, default_strategy_table

requires_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash 不可用")
requires_node = pytest.mark.skipif(shutil.which("node") is None, reason="node 不可用")


def write_skill(
    root: Path,
    name: str,
    tools: Any = None,
    scripts: dict[str, str] | None = None,
    description: str = "测试用 Skill",
    frontmatter_name: str | None = None,
    timeout_ms: int | None = None,
) -> Path:
    """
    在 root 下创建 Skill 目录。

    tools 为 None 时不写 tools.json；为 str 时原样写入（用于非法 JSON）。
    scripts: 相对路径 → 文件内容。
    """
    skill_dir = root / name
    skill_dir.mkdir(parents=True, exist_ok=True)
    lines = ["---", f"name: {frontmatter_name or name}", f"description: {description}"]
    if timeout_ms is not None:
        lines.append(f"timeout_ms: {timeout_ms}")
    lines += ["---", "", f"# {name}", ""]
    (skill_dir / "SKILL.md").write_text("\n".join(lines), encoding="utf-8")

    if tools is not None:
        raw = tools if isinstance(tools, str) else json.dumps(tools, ensure_ascii=False)
        (skill_dir / "tools.json").write_text(raw, encoding="utf-8")

    for rel, content in (scripts or {}).items():
        path = skill_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return skill_dir


def make_tool(
    name: str,
    handler: Callable[..., Any],
    parameters: dict[str, dict[str, Any]] | None = None,
    timeout_ms: int = 5_000,
) -> ResolvedTool:
    """不经过文件系统，直接用 handler 构造进程内工具"""
    declaration = ToolDeclaration(
        name=name,
        description=f"{name} 测试工具",
        parameters={k: ParameterSpec(**v) for k, v in (parameters or {}).items()},
    )
    strategy = InProcessStrategy(handler, timeout_ms, name)
    return ResolvedTool(
        declaration=declaration,
        source_skill="tests",
        invoke=strategy.invoke,
        language="python",
        timeout_ms=timeout_ms,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """不读取 .env；用户目录指向临时目录，不扫描内置 Skill"""
    return Settings(
        _env_file=None,
        USER_SKILLS_DIR=tmp_path / "user-skills",
        INCLUDE_BUILTIN_SKILLS=False,
        DEFAULT_TOOL_TIMEOUT_MS=5_000,
        DISPATCH_GRACE_MS=500,
    )


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()


@pytest.fixture
def resolver(settings: Settings) -> HandlerResolver:
    return HandlerResolver(
        default_strategy_table(settings),
        default_timeout_ms=settings.DEFAULT_TOOL_TIMEOUT_MS,
    )


@pytest.fixture
def dispatcher(registry: ToolRegistry) -> Dispatcher:
    return Dispatcher(registry, grace_ms=500)


@pytest.fixture
def author(settings: Settings, registry: ToolRegistry, resolver: HandlerResolver) -> DynamicToolAuthor:
    return DynamicToolAuthor(
        settings.USER_SKILLS_DIR,
        registry,
        resolver,
        timeout_ms=settings.DEFAULT_TOOL_TIMEOUT_MS,
    )


@pytest.fixture
def runtime(settings: Settings) -> SkillRuntime:
    return SkillRuntime(settings, ToolRegistry())
