"""SKILL.md frontmatter 读取"""

from pathlib import Path

from skill_runtime.skills.metadata import read_skill_metadata, render_skill_md, split_frontmatter


def _write(skill_dir: Path, text: str) -> Path:
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(text, encoding="utf-8")
    return skill_dir


def test_reads_name_description_and_timeout(tmp_path: Path) -> None:
    skill_dir = _write(
        tmp_path / "count-words",
        "---\nname: count-words\ndescription: 统计单词\ntimeout_ms: 1500\n---\n\n# 正文\n",
    )
    metadata = read_skill_metadata(skill_dir)
    assert metadata is not None
    assert metadata.name == "count-words"
    assert metadata.description == "统计单词"
    assert metadata.timeout_ms == 1500


def test_missing_skill_md_is_not_a_skill(tmp_path: Path) -> None:
    (tmp_path / "notes").mkdir()
    assert read_skill_metadata(tmp_path / "notes") is None


def test_missing_frontmatter(tmp_path: Path) -> None:
    assert read_skill_metadata(_write(tmp_path / "a", "# 只有正文\n")) is None


def test_missing_description(tmp_path: Path) -> None:
    assert read_skill_metadata(_write(tmp_path / "a", "---\nname: a\n---\nbody\n")) is None


def test_frontmatter_must_be_mapping(tmp_path: Path) -> None:
    assert read_skill_metadata(_write(tmp_path / "a", "---\n- a\n- b\n---\nbody\n")) is None


def test_invalid_timeout_falls_back_to_default(tmp_path: Path) -> None:
    skill_dir = _write(tmp_path / "a", "---\nname: a\ndescription: d\ntimeout_ms: soon\n---\n")
    metadata = read_skill_metadata(skill_dir)
    assert metadata is not None
    assert metadata.timeout_ms is None


def test_split_frontmatter_body_is_uninterpreted() -> None:
    parts = split_frontmatter("---\nname: a\n---\n\n## 步骤\n1. 执行\n")
    assert parts is not None
    assert parts[1] == "## 步骤\n1. 执行"


def test_rendered_skill_md_is_readable(tmp_path: Path) -> None:
    text = render_skill_md("fetch-weather", "查询天气: 支持多个城市", "# fetch-weather\n")
    metadata = read_skill_metadata(_write(tmp_path / "fetch-weather", text))
    assert metadata is not None
    assert metadata.name == "fetch-weather"
    assert metadata.description == "查询天气: 支持多个城市"


def test_dashes_inside_frontmatter_value(tmp_path: Path) -> None:
    text = render_skill_md("fetch-weather", "Weather --- fetches it", "# fetch-weather\n\n---\n\n正文")
    metadata = read_skill_metadata(_write(tmp_path / "fetch-weather", text))
    assert metadata is not None
    assert metadata.description == "Weather --- fetches it"
    assert split_frontmatter(text)[1] == "# fetch-weather\n\n---\n\n正文"


def test_closing_delimiter_must_be_its_own_line() -> None:
    assert split_frontmatter("---\nname: a\ndescription: b ---\n") is None
    assert split_frontmatter("---\nname: a\n----\nbody") is None
    assert split_frontmatter("---\r\nname: a\r\n---\r\nbody") == ("name: a\r\n", "body")
