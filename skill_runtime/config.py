"""
全局配置模块：通过 pydantic-settings 读取 .env 环境变量
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# 内置 Skill 目录（随包发布）
BUILTIN_SKILLS_DIR = Path(__file__).parent / "skills" / "builtin_skills"

# 动态作者支持的目标语言约定
AUTHOR_LANGUAGES = ("python", "javascript")


class Settings(BaseSettings):
    """运行时全局配置，从 .env 文件加载"""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).parent / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── 应用 ──
    ENV: str = "development"  # development | production
    APP_NAME: str = "skill-runtime"
    LOG_LEVEL: str = "INFO"

    # ── Skill 扫描 ──
    # 额外扫描根目录（JSON 列表），按顺序扫描，后者覆盖前者
    SKILL_ROOTS: list[Path] = Field(default_factory=list)
    # 用户 Skill 目录：最后扫描（优先级最高），define_tool 持久化也写到这里
    USER_SKILLS_DIR: Path = Path.home() / ".skill-runtime" / "skills"
    INCLUDE_BUILTIN_SKILLS: bool = True

    # ── 工具执行 ──
    DEFAULT_TOOL_TIMEOUT_MS: int = 30_000  # 单次调用超时（SKILL.md 未声明 timeout_ms 时使用）
    DISPATCH_GRACE_MS: int = 2_000  # Dispatcher 兜底超时 = 工具超时 + 宽限
    NODE_BIN: str = "node"
    BASH_BIN: str = "bash"

    # ── 动态工具 ──
    AUTHOR_LANGUAGE: str = "python"  # define_tool 未指定 language 时的默认约定

    @model_validator(mode="after")
    def _check_values(self) -> "Settings":
        """超时必须为正数，默认语言必须是受支持的约定"""
        if self.DEFAULT_TOOL_TIMEOUT_MS <= 0:
            raise ValueError("DEFAULT_TOOL_TIMEOUT_MS 必须大于 0")
        if self.DISPATCH_GRACE_MS < 0:
            raise ValueError("DISPATCH_GRACE_MS 不能为负数")
        if self.AUTHOR_LANGUAGE not in AUTHOR_LANGUAGES:
            raise ValueError(
                f"AUTHOR_LANGUAGE 不受支持：{self.AUTHOR_LANGUAGE}，"
                f"可选值：{', '.join(AUTHOR_LANGUAGES)}"
            )
        return self

    def skill_roots(self) -> list[Path]:
        """按扫描顺序返回全部根目录：内置 → SKILL_ROOTS → 用户目录"""
        roots: list[Path] = []
        if self.INCLUDE_BUILTIN_SKILLS:
            roots.append(BUILTIN_SKILLS_DIR)
        roots.extend(self.SKILL_ROOTS)
        roots.append(self.USER_SKILLS_DIR)
        return roots


@lru_cache
def get_settings() -> Settings:
    """单例获取配置（带缓存）"""
    return Settings()
