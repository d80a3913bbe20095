"""
Skill 工具运行时：扫描 Skill 目录中的 tools.json，注册工具并按处理器语言分发调用
"""

from skill_runtime.runtime import SkillRuntime

__all__ = ["SkillRuntime"]
