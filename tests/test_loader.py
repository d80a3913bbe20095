"""扫描 → 解析 → 注册：多根目录覆盖、解析失败隔离、重新加载"""

from pathlib import Path

from skill_runtime.skills.loader import load_skill_roots
from skill_runtime.tools.base import ToolOrigin
from skill_runtime.tools.registry import ToolRegistry
from skill_runtime.tools.resolver import HandlerResolver
from tests.conftest import make_tool, write_skill

HANDLER = "def handler(args):\n    return {{'from': '{label}'}}\n"


def _weather_tools(*names: str) -> list[dict]:
    return [
        {"name": name, "description": f"{name} 描述", "script": f"scripts/{name}.py"}
        for name in names
    ]


def _weather_scripts(label: str, *names: str) -> dict[str, str]:
    return {f"scripts/{name}.py": HANDLER.format(label=label) for name in names}


def test_user_root_overrides_builtin_skill(
    tmp_path: Path, registry: ToolRegistry, resolver: HandlerResolver
) -> None:
    builtin, user = tmp_path / "builtin", tmp_path / "user"
    write_skill(
        builtin,
        "weather",
        _weather_tools("get_weather", "get_forecast"),
        _weather_scripts("builtin", "get_weather", "get_forecast"),
    )
    write_skill(user, "weather", _weather_tools("get_weather"), _weather_scripts("user", "get_weather"))

    report = load_skill_roots([builtin, user], registry, resolver)

    tool = registry.lookup("get_weather")
    assert tool is not None
    assert tool.script_path == (user / "weather" / "scripts" / "get_weather.py").resolve()
    # 被取代的 Skill 中、新 Skill 未再声明的工具一并移除
    assert registry.lookup("get_forecast") is None
    assert report.removed == ["get_forecast"]
    assert report.skills["weather"].base_path == user / "weather"


def test_same_tool_in_different_skills_last_wins(
    tmp_path: Path, registry: ToolRegistry, resolver: HandlerResolver
) -> None:
    write_skill(tmp_path, "alpha", [{"name": "lookup", "description": "a"}])
    write_skill(tmp_path, "beta", [{"name": "lookup", "description": "b"}])
    load_skill_roots([tmp_path], registry, resolver)
    entry = registry.get_entry("lookup")
    assert entry.source_skill_name == "beta"
    assert entry.tool.description == "b"


def test_resolution_failure_skips_only_that_tool(
    tmp_path: Path, registry: ToolRegistry, resolver: HandlerResolver
) -> None:
    write_skill(
        tmp_path,
        "mixed",
        [
            {"name": "escape", "description": "d", "script": "../../etc/passwd.py"},
            {"name": "ruby", "description": "d", "script": "scripts/x.rb"},
            {"name": "missing", "description": "d", "script": "scripts/missing.py"},
            {"name": "good", "description": "d", "script": "scripts/good.py"},
            {"name": "guide", "description": "d"},
        ],
        {"scripts/good.py": "def handler(args):\n    return 'ok'\n"},
    )
    report = load_skill_roots([tmp_path], registry, resolver)
    assert sorted(registry.names()) == ["good", "guide"]
    assert report.failed["escape"].startswith("UnsafeScriptPath:")
    assert report.failed["ruby"].startswith("UnsupportedHandlerLanguage:")
    assert report.failed["missing"].startswith("HandlerLoadError:")
    assert registry.lookup("guide").is_stub


def test_protected_names_are_not_overridden(
    tmp_path: Path, registry: ToolRegistry, resolver: HandlerResolver
) -> None:
    builtin_tool = make_tool("define_tool", lambda args: "builtin")
    registry.register(builtin_tool, "builtin", ToolOrigin.BUILTIN)
    registry.protect("define_tool")
    write_skill(tmp_path, "sneaky", [{"name": "define_tool", "description": "d"}])

    report = load_skill_roots([tmp_path], registry, resolver)
    assert registry.lookup("define_tool") is builtin_tool
    assert report.failed["define_tool"].startswith("ProtectedToolError:")


def test_reload_prunes_vanished_tools_but_keeps_runtime_defined(
    tmp_path: Path, registry: ToolRegistry, resolver: HandlerResolver
) -> None:
    write_skill(tmp_path, "keep", [{"name": "kept", "description": "d"}])
    gone = write_skill(tmp_path, "gone", [{"name": "vanishing", "description": "d"}])
    load_skill_roots([tmp_path], registry, resolver, prune_stale=True)
    registry.register(make_tool("adhoc", lambda args: 1), "runtime", ToolOrigin.RUNTIME_DEFINED)

    (gone / "SKILL.md").unlink()
    report = load_skill_roots([tmp_path], registry, resolver, prune_stale=True)

    assert report.removed == ["vanishing"]
    assert sorted(registry.names()) == ["adhoc", "kept"]


def test_timeout_from_skill_applies_to_tools(
    tmp_path: Path, registry: ToolRegistry, resolver: HandlerResolver
) -> None:
    write_skill(tmp_path, "slow", [{"name": "slow_tool", "description": "d"}], timeout_ms=777)
    load_skill_roots([tmp_path], registry, resolver)
    assert registry.lookup("slow_tool").timeout_ms == 777


def test_failed_redeclaration_removes_superseded_tool(
    tmp_path: Path, registry: ToolRegistry, resolver: HandlerResolver
) -> None:
    builtin, user = tmp_path / "builtin", tmp_path / "user"
    write_skill(builtin, "weather", [{"name": "get_weather", "description": "内置"}])
    write_skill(
        user,
        "weather",
        [{"name": "get_weather", "description": "用户", "script": "scripts/x.rb"}],
        {"scripts/x.rb": "puts 1\n"},
    )

    report = load_skill_roots([builtin, user], registry, resolver)

    assert registry.get_entry("get_weather") is None
    assert report.removed == ["get_weather"]
    assert report.failed["get_weather"].startswith("UnsupportedHandlerLanguage:")
    assert report.tool_count == 0
