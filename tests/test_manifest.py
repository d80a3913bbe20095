"""tools.json 清单校验：清单级错误与条目级跳过"""

import json
from pathlib import Path

import pytest

from skill_runtime.errors import DuplicateToolName, MalformedManifest, NotAnArray, SkippableEntry
from skill_runtime.skills.manifest import load_manifest, validate_manifest


def _entry(name: str, **extra) -> dict:
    return {"name": name, "description": f"{name} 描述", **extra}


class TestManifestLevelErrors:
    def test_invalid_json(self) -> None:
        with pytest.raises(MalformedManifest):
            validate_manifest("[{ not json")

    def test_single_object_rejected(self) -> None:
        with pytest.raises(NotAnArray) as exc_info:
            validate_manifest(json.dumps(_entry("count_words")))
        assert "dict" in exc_info.value.message

    def test_duplicate_names_reject_whole_manifest(self) -> None:
        raw = json.dumps([_entry("a"), _entry("b"), _entry("a")])
        with pytest.raises(DuplicateToolName) as exc_info:
            validate_manifest(raw)
        assert exc_info.value.tool_name == "a"

    def test_duplicate_check_includes_invalid_entries(self) -> None:
        # 第二个 "a" 缺少 description，本应被跳过，但重复检查先于逐条校验
        raw = json.dumps([_entry("a"), {"name": "a"}])
        with pytest.raises(DuplicateToolName):
            validate_manifest(raw)

    def test_unreadable_file_is_malformed(self, tmp_path: Path) -> None:
        with pytest.raises(MalformedManifest):
            load_manifest(tmp_path / "tools.json")


class TestEntryLevel:
    def test_valid_entries_keep_input_order(self) -> None:
        raw = json.dumps([_entry("zeta"), _entry("alpha"), _entry("mid")])
        result = validate_manifest(raw)
        assert [d.name for d in result.declarations] == ["zeta", "alpha", "mid"]
        assert result.warnings == ()

    def test_empty_array(self) -> None:
        result = validate_manifest("[]")
        assert result.declarations == ()
        assert result.warnings == ()

    def test_missing_description_is_skipped(self) -> None:
        raw = json.dumps([{"name": "broken"}, _entry("ok")])
        result = validate_manifest(raw)
        assert [d.name for d in result.declarations] == ["ok"]
        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert isinstance(warning, SkippableEntry)
        assert warning.index == 0
        assert warning.tool_name == "broken"

    @pytest.mark.parametrize("bad_name", ["CountWords", "1tool", "count-words", ""])
    def test_bad_name_pattern_is_skipped(self, bad_name: str) -> None:
        result = validate_manifest(json.dumps([_entry(bad_name), _entry("good")]))
        assert [d.name for d in result.declarations] == ["good"]
        assert len(result.warnings) == 1

    def test_non_object_entry_is_skipped(self) -> None:
        result = validate_manifest(json.dumps(["count_words", _entry("good")]))
        assert [d.name for d in result.declarations] == ["good"]
        assert result.warnings[0].tool_name is None

    def test_unknown_parameter_type_is_skipped(self) -> None:
        entry = _entry("t", parameters={"x": {"type": "integer", "description": "x"}})
        result = validate_manifest(json.dumps([entry]))
        assert result.declarations == ()
        assert "parameters.x.type" in result.warnings[0].reason

    def test_enum_values_must_match_type(self) -> None:
        entry = _entry("t", parameters={"unit": {"type": "string", "description": "u", "enum": ["c", 1]}})
        result = validate_manifest(json.dumps([entry]))
        assert result.declarations == ()

    def test_empty_enum_is_skipped(self) -> None:
        entry = _entry("t", parameters={"unit": {"type": "string", "description": "u", "enum": []}})
        assert validate_manifest(json.dumps([entry])).declarations == ()

    def test_optional_must_be_boolean(self) -> None:
        entry = _entry("t", parameters={"x": {"type": "string", "description": "x", "optional": "yes"}})
        assert validate_manifest(json.dumps([entry])).declarations == ()

    def test_blank_parameter_description_is_skipped(self) -> None:
        entry = _entry("t", parameters={"x": {"type": "string", "description": "   "}})
        assert validate_manifest(json.dumps([entry])).declarations == ()

    def test_full_entry(self) -> None:
        entry = _entry(
            "get_weather",
            script="scripts/get_weather.py",
            parameters={
                "city": {"type": "string", "description": "城市"},
                "unit": {"type": "string", "description": "单位", "enum": ["c", "f"], "optional": True},
            },
        )
        declaration = validate_manifest(json.dumps([entry])).declarations[0]
        assert declaration.script == "scripts/get_weather.py"
        assert declaration.parameters["unit"].optional is True
        assert declaration.parameters["unit"].enum == ["c", "f"]
        assert declaration.required_parameters() == ["city"]
