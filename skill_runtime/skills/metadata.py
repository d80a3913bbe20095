"""
SKILL.md 元数据读取

运行时只消费 frontmatter 中的 name / description（以及可选的 timeout_ms），
正文（给 Agent 看的操作手册）不做任何解释。

SKILL.md 格式：
    ---
    name: count-words
    description: 统计文本中的单词数量
    timeout_ms: 10000
    ---

    # Skill 正文
    ...
"""

from __future__ import annotations

import re
from pathlib import Path

import structlog
import yaml

from skill_runtime.skills.models import SkillMetadata

log = structlog.get_logger()

INSTRUCTIONS_FILENAME = "SKILL.md"

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*\r?$\n?(.*)\Z", re.S | re.M)


def split_frontmatter(raw: str) -> tuple[str, str] | None:
    """
    分割 frontmatter 和 body：格式为 ---\\n{yaml}\\n---\\n{body}

    结束分隔符必须独占一行，YAML 值中的 --- 不会截断 frontmatter。

    Returns:
        (frontmatter_yaml, body)；缺少 frontmatter 时返回 None
    """
    match = _FRONTMATTER_RE.match(raw)
    if match is None:
        return None
    return match.group(1), match.group(2).strip()


def read_skill_metadata(skill_dir: Path) -> SkillMetadata | None:
    """
    从 Skill 目录读取 SKILL.md frontmatter。

    Returns:
        SkillMetadata；SKILL.md 不存在（非 Skill 目录）或格式不合法时返回 None
    """
    skill_md_path = skill_dir / INSTRUCTIONS_FILENAME
    if not skill_md_path.is_file():
        log.debug("跳过非 Skill 目录（缺少 SKILL.md）", dir=str(skill_dir))
        return None

    try:
        raw = skill_md_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        log.warning("SKILL.md 读取失败", path=str(skill_md_path), error=str(e))
        return None

    split = split_frontmatter(raw)
    if split is None:
        log.warning("SKILL.md 缺少 YAML frontmatter（---）", path=str(skill_md_path))
        return None
    frontmatter_raw, _body = split

    try:
        fm = yaml.safe_load(frontmatter_raw) or {}
    except yaml.YAMLError as e:
        log.error("SKILL.md frontmatter YAML 解析失败", path=str(skill_md_path), error=str(e))
        return None

    if not isinstance(fm, dict):
        log.error("SKILL.md frontmatter 必须是映射", path=str(skill_md_path))
        return None

    # 必填字段校验
    name = fm.get("name")
    description = fm.get("description")
    if not name or not description:
        log.error(
            "SKILL.md 缺少必填字段 name/description",
            path=str(skill_md_path),
            found_fields=list(fm.keys()),
        )
        return None

    timeout_ms: int | None = None
    if fm.get("timeout_ms") is not None:
        try:
            timeout_ms = int(fm["timeout_ms"])
        except (TypeError, ValueError):
            log.warning("SKILL.md timeout_ms 非整数，使用默认超时", path=str(skill_md_path))
        else:
            if timeout_ms <= 0:
                log.warning("SKILL.md timeout_ms 必须为正数，使用默认超时", path=str(skill_md_path))
                timeout_ms = None

    return SkillMetadata(
        name=str(name),
        description=str(description),
        timeout_ms=timeout_ms,
    )


def render_skill_md(name: str, description: str, body: str) -> str:
    """生成 SKILL.md 文本（frontmatter + 正文），供动态工具持久化使用"""
    frontmatter = yaml.safe_dump(
        {"name": name, "description": description},
        allow_unicode=True,
        sort_keys=False,
    )
    return f"---\n{frontmatter}---\n\n{body.strip()}\n"
