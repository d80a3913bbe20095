"""
动态工具作者：把运行时定义的工具落盘成与手写 Skill 完全一致的目录结构

    USER_SKILLS_DIR/
    └── fetch-weather/          ← 由工具名 fetch_weather 推导（_ → -）
        ├── SKILL.md            ← 生成的 frontmatter + 正文
        ├── tools.json          ← 单条目数组
        └── scripts/
            └── fetch_weather.py  ← 按目标语言约定包装的处理器

下次扫描时该目录会被 Scanner 重新发现（round-trip）。

写入流程：先写到同级隐藏暂存目录，全部成功后 rename 到目标位置；
任一步失败则删除暂存目录。目标目录已存在时直接失败，不做合并。
落盘成功后立即注册到 Registry，无需重新扫描即可调用。
"""

from __future__ import annotations

import json
import os
import re
import shutil
import tempfile
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import structlog
from pydantic import ValidationError

from skill_runtime.errors import (
    HandlerLoadError,
    InvalidDerivedName,
    InvalidToolDefinition,
    ProtectedToolError,
    ResolutionError,
    SkillAlreadyExists,
    UnsupportedHandlerLanguage,
)
from skill_runtime.skills.manifest import MANIFEST_FILENAME
from skill_runtime.skills.metadata import INSTRUCTIONS_FILENAME, render_skill_md
from skill_runtime.skills.models import ToolDeclaration
from skill_runtime.tools.base import RegistryEntry, ResolvedTool, ToolOrigin
from skill_runtime.tools.registry import ToolRegistry
from skill_runtime.tools.resolver import HandlerResolver
from skill_runtime.tools.strategies import InProcessStrategy

log = structlog.get_logger()

SKILL_DIR_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
SKILL_DIR_MAX_LENGTH = 64

# 非持久化工具的来源标记
RUNTIME_SOURCE = "runtime"


def derive_skill_dir_name(tool_name: str) -> str:
    """工具名 → Skill 目录名；不满足目录命名规则时抛 InvalidDerivedName"""
    derived = tool_name.replace("_", "-")
    if len(derived) > SKILL_DIR_MAX_LENGTH or not SKILL_DIR_PATTERN.match(derived):
        raise InvalidDerivedName(tool_name, derived)
    return derived


# ── 目标语言约定 ──

def _indent_body(code: str, prefix: str) -> str:
    body = textwrap.dedent(code).strip("\n")
    return textwrap.indent(body, prefix) if body.strip() else ""


def _wrap_python(code: str, description: str) -> str:
    body = _indent_body(code, "    ") or "    return None"
    # 描述以 repr 字面量作为模块 docstring
    return f"{description!r}\n\n\nasync def handler(args):\n{body}\n"


def _wrap_javascript(code: str, description: str) -> str:
    body = _indent_body(code, "  ")
    doc = description.replace("*/", "* /")
    return (
        f"/**\n * {doc}\n */\n"
        f"export default async function handler(args) {{\n{body}\n}}\n"
    )


def _check_python(source: str, filename: str) -> None:
    try:
        compile(source, filename, "exec")
    except SyntaxError as e:
        raise HandlerLoadError(f"处理器代码语法错误：{e}") from e


@dataclass(frozen=True)
class LanguageConvention:
    """处理器模块约定：扩展名 + 包装函数 + 落盘前的可选语法检查"""

    language: str
    extension: str
    wrap: Callable[[str, str], str]
    check: Callable[[str, str], None] | None = None


LANGUAGE_CONVENTIONS: dict[str, LanguageConvention] = {
    "python": LanguageConvention("python", ".py", _wrap_python, _check_python),
    "javascript": LanguageConvention("javascript", ".js", _wrap_javascript),
}


def _render_instructions(dir_name: str, declaration: ToolDeclaration) -> str:
    lines = [
        f"# {dir_name}",
        "",
        declaration.description,
        "",
        "该 Skill 由 define_tool 在运行时创建。",
        "",
        "## 工具",
        "",
        f"- `{declaration.name}`：{declaration.description}",
    ]
    for param_name, spec in declaration.parameters.items():
        flag = "可选" if spec.optional else "必填"
        line = f"  - `{param_name}`（{spec.type}，{flag}）：{spec.description}"
        if spec.enum is not None:
            line += f" 允许值：{json.dumps(spec.enum, ensure_ascii=False)}"
        lines.append(line)
    return "\n".join(lines)


class DynamicToolAuthor:
    """运行时工具定义：持久化落盘 + 即时注册"""

    def __init__(
        self,
        root: Path,
        registry: ToolRegistry,
        resolver: HandlerResolver,
        *,
        default_language: str = "python",
        timeout_ms: int = 30_000,
    ) -> None:
        self.root = Path(root)
        self._registry = registry
        self._resolver = resolver
        self._default_language = default_language
        self._timeout_ms = timeout_ms

    def _convention(self, language: str | None) -> LanguageConvention:
        name = (language or self._default_language).lower()
        convention = LANGUAGE_CONVENTIONS.get(name)
        if convention is None:
            raise UnsupportedHandlerLanguage(
                f"不支持的目标语言 '{name}'，可选：{', '.join(LANGUAGE_CONVENTIONS)}"
            )
        if not self._resolver.strategies.supports(convention.extension):
            raise UnsupportedHandlerLanguage(f"未注册 {convention.extension} 的执行策略")
        return convention

    def _declaration(
        self,
        name: str,
        description: str,
        parameters: dict[str, Any] | None,
        script: str | None,
    ) -> ToolDeclaration:
        if self._registry.is_protected(name):
            raise ProtectedToolError(name)
        payload: dict[str, Any] = {
            "name": name,
            "description": description,
            "parameters": parameters or {},
        }
        if script is not None:
            payload["script"] = script
        try:
            return ToolDeclaration.model_validate(payload)
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
                for err in e.errors()
            )
            raise InvalidToolDefinition(f"工具定义不合法：{details}", {"tool": name}) from e

    def define(
        self,
        name: str,
        description: str,
        parameters: dict[str, Any] | None,
        code: str,
        *,
        persistent: bool = False,
        language: str | None = None,
    ) -> RegistryEntry:
        """定义工具：persistent=True 落盘后注册；否则只在内存中注册（仅 python）"""
        if persistent:
            _, entry = self._persist(name, description, parameters, code, language)
            return entry

        convention = self._convention(language)
        if convention.language != "python":
            raise UnsupportedHandlerLanguage(
                f"{convention.language} 工具必须 persistent=true（需要落盘后由子进程执行）"
            )
        declaration = self._declaration(name, description, parameters, None)
        source = convention.wrap(code, description)
        strategy = InProcessStrategy.from_source(source, name, self._timeout_ms)
        tool = ResolvedTool(
            declaration=declaration,
            source_skill=RUNTIME_SOURCE,
            invoke=strategy.invoke,
            is_stub=False,
            language=strategy.language,
            timeout_ms=self._timeout_ms,
        )
        log.info("运行时工具已定义（内存）", tool=name)
        return self._registry.register(tool, RUNTIME_SOURCE, ToolOrigin.RUNTIME_DEFINED)

    def persist(
        self,
        name: str,
        description: str,
        parameters: dict[str, Any] | None,
        code: str,
        language: str | None = None,
    ) -> Path:
        """
        落盘并注册，返回新 Skill 目录。

        Raises:
            InvalidDerivedName / SkillAlreadyExists / InvalidToolDefinition /
            UnsupportedHandlerLanguage / HandlerLoadError / ProtectedToolError
        """
        target, _ = self._persist(name, description, parameters, code, language)
        return target

    def _persist(
        self,
        name: str,
        description: str,
        parameters: dict[str, Any] | None,
        code: str,
        language: str | None,
    ) -> tuple[Path, RegistryEntry]:
        dir_name = derive_skill_dir_name(name)
        convention = self._convention(language)
        script_rel = f"scripts/{name}{convention.extension}"
        declaration = self._declaration(name, description, parameters, script_rel)

        module_text = convention.wrap(code, description)
        if convention.check is not None:
            convention.check(module_text, script_rel)

        target = self.root / dir_name
        if target.exists():
            raise SkillAlreadyExists(target)

        self.root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{dir_name}-", dir=self.root))
        try:
            (staging / INSTRUCTIONS_FILENAME).write_text(
                render_skill_md(dir_name, description, _render_instructions(dir_name, declaration)),
                encoding="utf-8",
            )
            manifest_entry = {
                "name": declaration.name,
                "description": declaration.description,
                "script": script_rel,
                "parameters": declaration.parameters_payload(),
            }
            (staging / MANIFEST_FILENAME).write_text(
                json.dumps([manifest_entry], ensure_ascii=False, indent=2) + "\n",
                encoding="utf-8",
            )
            script_path = staging / script_rel
            script_path.parent.mkdir(parents=True, exist_ok=True)
            script_path.write_text(module_text, encoding="utf-8")

            try:
                os.rename(staging, target)
            except OSError as e:
                if target.exists():
                    raise SkillAlreadyExists(target) from e
                raise
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        try:
            tool = self._resolver.resolve(
                declaration,
                target,
                source_skill=dir_name,
                timeout_ms=self._timeout_ms,
            )
        except ResolutionError:
            shutil.rmtree(target, ignore_errors=True)
            raise

        entry = self._registry.register(tool, dir_name, ToolOrigin.RUNTIME_DEFINED)
        log.info("运行时工具已持久化", tool=name, path=str(target), language=convention.language)
        return target, entry

    def purge(self, name: str, entry: RegistryEntry | None = None) -> bool:
        """
        删除由 define_tool 落盘的 Skill 目录，并移除该 Skill 注册的全部工具。

        只处理 origin 为 RUNTIME_DEFINED 且来源 Skill 即推导目录名的条目；
        手写 Skill、重新扫描后变为 discovered 的目录、未注册的名字一律返回 False。
        entry 为调用方在移除注册前取到的条目，缺省时从 Registry 查找。
        """
        try:
            dir_name = derive_skill_dir_name(name)
        except InvalidDerivedName:
            return False
        if entry is None:
            entry = self._registry.get_entry(name)
        if (
            entry is None
            or entry.origin is not ToolOrigin.RUNTIME_DEFINED
            or entry.source_skill_name != dir_name
        ):
            log.info("目录不是本进程 define_tool 创建的，跳过删除", tool=name, dir=dir_name)
            return False
        target = self.root / dir_name
        if not target.is_dir():
            return False

        for other in self._registry.entries():
            if other.source_skill_name == dir_name and not self._registry.is_protected(other.name):
                self._registry.remove(other.name)
        shutil.rmtree(target)
        log.info("运行时工具目录已删除", tool=name, path=str(target))
        return True
