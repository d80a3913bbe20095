"""
Skill 数据模型

- SkillUnit：扫描得到的 Skill 目录（不可变，后扫描的同名 Skill 取代而非修改）
- ToolDeclaration：tools.json 中的一个工具声明（已校验、未注册）
- ParameterSpec：单个参数的类型 / 描述 / enum / 可选性

ToolDeclaration / ParameterSpec 使用 Pydantic 校验，校验失败由 Manifest Validator
转换为 SkippableEntry。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator, model_validator

TOOL_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"

ParameterType = Literal["string", "number", "boolean", "object", "array"]


def matches_type(value: Any, param_type: str) -> bool:
    """判断 JSON 值是否符合声明的参数类型（bool 不算 number）"""
    if param_type == "string":
        return isinstance(value, str)
    if param_type == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if param_type == "boolean":
        return isinstance(value, bool)
    if param_type == "object":
        return isinstance(value, dict)
    if param_type == "array":
        return isinstance(value, list)
    return False


class ParameterSpec(BaseModel):
    """单个参数声明"""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: ParameterType
    description: str = Field(min_length=1)
    enum: list[Any] | None = None
    optional: StrictBool = False

    @field_validator("description")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("description 不能为空白")
        return value

    @model_validator(mode="after")
    def _check_enum(self) -> ParameterSpec:
        """enum 若存在必须非空，且每个值都符合 type"""
        if self.enum is None:
            return self
        if not self.enum:
            raise ValueError("enum 不能为空数组")
        for value in self.enum:
            if not matches_type(value, self.type):
                raise ValueError(f"enum 值 {value!r} 与类型 {self.type} 不符")
        return self

    def to_json_schema(self) -> dict[str, Any]:
        """渲染为 JSON Schema 属性（function calling 用）"""
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        return schema


class ToolDeclaration(BaseModel):
    """tools.json 数组中的一个工具声明"""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(pattern=TOOL_NAME_PATTERN)
    description: str = Field(min_length=1)
    script: str | None = None  # 相对 Skill 目录的脚本路径；缺省则为 stub 工具
    parameters: dict[str, ParameterSpec] = Field(default_factory=dict)

    @field_validator("description")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("description 不能为空白")
        return value

    @field_validator("script")
    @classmethod
    def _script_non_blank(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("script 不能为空字符串")
        return value

    def required_parameters(self) -> list[str]:
        return [name for name, spec in self.parameters.items() if not spec.optional]

    def parameters_payload(self) -> dict[str, dict[str, Any]]:
        """按 tools.json 的原始形态输出参数（listTools 展示、持久化写回）"""
        return {
            name: spec.model_dump(exclude_none=True)
            for name, spec in self.parameters.items()
        }

    def to_function_schema(self) -> dict[str, Any]:
        """生成 OpenAI function calling 格式的 tool schema"""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        name: spec.to_json_schema()
                        for name, spec in self.parameters.items()
                    },
                    "required": self.required_parameters(),
                },
            },
        }


@dataclass(frozen=True)
class SkillMetadata:
    """SKILL.md frontmatter 中运行时关心的字段"""
    name: str
    description: str
    timeout_ms: int | None = None


@dataclass(frozen=True)
class SkillUnit:
    """
    扫描得到的 Skill 目录。

    name 必须等于目录名；manifest_path 为 None 表示纯指令 Skill。
    """
    name: str
    description: str
    base_path: Path
    instructions_path: Path
    manifest_path: Path | None = None
    timeout_ms: int | None = None


@dataclass(frozen=True)
class ScannedSkill:
    """Scanner 的单个产出：Skill 元数据 + 通过校验的工具声明"""
    unit: SkillUnit
    declarations: tuple[ToolDeclaration, ...] = ()
    warnings: tuple[str, ...] = field(default=())
