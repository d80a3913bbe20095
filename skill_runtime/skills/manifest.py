"""
tools.json 清单校验

清单是严格的对象数组：
    [
      {
        "name": "count_words",
        "description": "Count words",
        "script": "scripts/count_words.js",
        "parameters": {"text": {"type": "string", "description": "Text"}}
      }
    ]

错误作用域：
- 非 JSON / 非数组 / 工具名重复 → 抛异常，整个清单作废
- 单个条目不合法 → SkippableEntry 收集到 warnings，跳过该条目
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from skill_runtime.errors import DuplicateToolName, MalformedManifest, NotAnArray, SkippableEntry
from skill_runtime.skills.models import ToolDeclaration

MANIFEST_FILENAME = "tools.json"


@dataclass(frozen=True)
class ManifestValidation:
    """校验结果：按输入顺序的合法声明 + 被跳过条目的警告"""
    declarations: tuple[ToolDeclaration, ...] = ()
    warnings: tuple[SkippableEntry, ...] = field(default=())


def _format_validation_error(error: ValidationError) -> str:
    """把 Pydantic 错误压成一行：loc: msg; loc: msg"""
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ())) or "<entry>"
        parts.append(f"{loc}: {item.get('msg', '')}")
    return "; ".join(parts)


def _find_duplicate(entries: list[Any]) -> str | None:
    seen: set[str] = set()
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        name = entry.get("name")
        if not isinstance(name, str) or not name:
            continue
        if name in seen:
            return name
        seen.add(name)
    return None


def validate_manifest(raw_text: str) -> ManifestValidation:
    """
    校验一份 tools.json 文本。

    Raises:
        MalformedManifest: 不是合法 JSON
        NotAnArray: 顶层不是数组（单对象清单同样拒绝）
        DuplicateToolName: 清单内工具名重复
    """
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError as e:
        raise MalformedManifest(f"JSON 解析失败：{e}") from e

    if not isinstance(data, list):
        raise NotAnArray(type(data).__name__)

    # 重复检查先于逐条校验，覆盖所有带 name 的条目（包括随后会被跳过的）
    duplicate = _find_duplicate(data)
    if duplicate is not None:
        raise DuplicateToolName(duplicate)

    declarations: list[ToolDeclaration] = []
    warnings: list[SkippableEntry] = []

    for index, entry in enumerate(data):
        if not isinstance(entry, dict):
            warnings.append(SkippableEntry(index, f"条目必须是对象，实际为 {type(entry).__name__}"))
            continue

        raw_name = entry.get("name")
        tool_name = raw_name if isinstance(raw_name, str) and raw_name else None

        try:
            declarations.append(ToolDeclaration.model_validate(entry))
        except ValidationError as e:
            warnings.append(SkippableEntry(index, _format_validation_error(e), tool_name))

    return ManifestValidation(declarations=tuple(declarations), warnings=tuple(warnings))


def load_manifest(manifest_path: Path) -> ManifestValidation:
    """读取并校验 tools.json 文件；文件不可读视同 MalformedManifest"""
    try:
        raw_text = manifest_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedManifest(f"无法读取 {manifest_path}：{e}") from e
    return validate_manifest(raw_text)
