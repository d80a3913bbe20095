"""
Skill 扫描器

按调用方给定的顺序遍历各根目录的直接子目录：
    root/
    ├── count-words/
    │   ├── SKILL.md        ← 必须存在，否则不是 Skill（静默跳过）
    │   ├── tools.json      ← 可选，工具清单
    │   └── scripts/
    └── notes/              ← 无 SKILL.md，忽略

scan_skill_roots() 是生成器：惰性产出、每次调用重新遍历文件系统、不做同名去重
（覆盖策略由消费方决定）。
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator

import structlog

from skill_runtime.errors import ManifestError, SkillNameMismatch
from skill_runtime.skills.manifest import MANIFEST_FILENAME, load_manifest
from skill_runtime.skills.metadata import INSTRUCTIONS_FILENAME, read_skill_metadata
from skill_runtime.skills.models import ScannedSkill, SkillUnit

log = structlog.get_logger()


def _candidate_dirs(root: Path) -> list[Path]:
    """根目录下的候选子目录，按名称排序；. 和 _ 开头的目录（含暂存目录）不参与扫描"""
    return [
        entry
        for entry in sorted(root.iterdir(), key=lambda p: p.name)
        if entry.is_dir() and not entry.name.startswith((".", "_"))
    ]


def scan_skill_dir(skill_dir: Path) -> ScannedSkill | None:
    """
    扫描单个 Skill 目录。

    Returns:
        ScannedSkill；非 Skill 目录或 name 与目录名不一致时返回 None
    """
    metadata = read_skill_metadata(skill_dir)
    if metadata is None:
        return None

    if metadata.name != skill_dir.name:
        mismatch = SkillNameMismatch(metadata.name, skill_dir.name)
        log.warning("Skill 名称与目录不一致，跳过", path=str(skill_dir), error=mismatch.render())
        return None

    manifest_path = skill_dir / MANIFEST_FILENAME
    unit = SkillUnit(
        name=metadata.name,
        description=metadata.description,
        base_path=skill_dir,
        instructions_path=skill_dir / INSTRUCTIONS_FILENAME,
        manifest_path=manifest_path if manifest_path.is_file() else None,
        timeout_ms=metadata.timeout_ms,
    )

    if unit.manifest_path is None:
        log.debug("Skill 无工具清单（纯指令）", skill=unit.name)
        return ScannedSkill(unit=unit)

    try:
        validation = load_manifest(unit.manifest_path)
    except ManifestError as e:
        # 清单级错误：丢弃全部工具，Skill 本身仍以纯指令形式保留
        log.warning(
            "工具清单无效，Skill 降级为纯指令",
            skill=unit.name,
            path=str(unit.manifest_path),
            error=e.render(),
        )
        return ScannedSkill(unit=unit, warnings=(e.render(),))

    for warning in validation.warnings:
        log.warning("工具声明无效，已跳过", skill=unit.name, error=warning.render())

    return ScannedSkill(
        unit=unit,
        declarations=validation.declarations,
        warnings=tuple(w.render() for w in validation.warnings),
    )


def scan_skill_roots(roots: Iterable[Path]) -> Iterator[ScannedSkill]:
    """按根目录顺序惰性产出 ScannedSkill（后面的根目录用于覆盖前面的）"""
    for root in roots:
        root = Path(root)
        if not root.is_dir():
            log.debug("Skill 根目录不存在，跳过", path=str(root))
            continue

        count = 0
        for skill_dir in _candidate_dirs(root):
            scanned = scan_skill_dir(skill_dir)
            if scanned is None:
                continue
            count += 1
            log.debug(
                "发现 Skill",
                skill=scanned.unit.name,
                tools=[d.name for d in scanned.declarations],
            )
            yield scanned

        log.info("Skill 根目录扫描完成", root=str(root), count=count)
