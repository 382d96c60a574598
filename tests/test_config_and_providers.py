import pytest

from flowsmith.config import DEFAULT_CONFIG, BuildConfig, config_from_mapping, load_config
from flowsmith.errors import ConfigError
from flowsmith.providers.postprocess import (
    POST_PROCESSORS,
    apply_post_processor,
    get_post_processor,
    relocate_code_fields,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("FLOWSMITH_ROW_TOLERANCE", "FLOWSMITH_MAX_INPUT_CHARS", "FLOWSMITH_POST_PROCESSOR"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    cfg = load_config()
    assert cfg == DEFAULT_CONFIG
    assert cfg.start_x == 250 and cfg.start_y == 300
    assert cfg.spacing_x == 200
    assert cfg.branch_gap == 400
    assert cfg.row_tolerance == 150
    assert cfg.post_processor == "identity"


def test_yaml_file_with_layout_section(tmp_path):
    path = tmp_path / "flowsmith.yaml"
    path.write_text(
        "max_input_chars: 5000\n"
        "layout:\n"
        "  start_x: 100\n"
        "  spacing_x: 300\n"
        "post_processor: relocate_code_fields\n",
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.max_input_chars == 5000
    assert cfg.start_x == 100
    assert cfg.spacing_x == 300
    assert cfg.start_y == 300
    assert cfg.post_processor == "relocate_code_fields"


def test_json_file(tmp_path):
    path = tmp_path / "flowsmith.json"
    path.write_text('{"min_confidence": 0.7}', encoding="utf-8")
    assert load_config(path).min_confidence == 0.7


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "flowsmith.yaml"
    path.write_text("row_tolerance: 90\n", encoding="utf-8")
    monkeypatch.setenv("FLOWSMITH_ROW_TOLERANCE", "120")
    assert load_config(path).row_tolerance == 120


def test_empty_yaml_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == DEFAULT_CONFIG


@pytest.mark.parametrize("content", [
    "unknown_key: 1\n",
    "row_tolerance: wide\n",
    "- just\n- a list\n",
])
def test_bad_config_values(tmp_path, content):
    path = tmp_path / "bad.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_unreadable_config(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")
    other = tmp_path / "config.ini"
    other.write_text("[x]", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(other)


def test_config_from_mapping_coerces_strings():
    cfg = config_from_mapping({"spacing_x": "250", "min_confidence": "0.6"})
    assert cfg.spacing_x == 250
    assert cfg.min_confidence == 0.6
    assert cfg.with_overrides(spacing_x=10).spacing_x == 10
    assert isinstance(cfg, BuildConfig)


def test_relocate_code_fields():
    doc = {"nodes": [
        {"name": "A", "jsCode": "return 1;", "parameters": {}},
        {"name": "B", "functionCode": "root", "parameters": {"functionCode": "kept"}},
        {"name": "C", "expression": "={{ 1 }}"},
        "not a node",
    ]}
    out = relocate_code_fields(doc)
    a, b, c, _ = out["nodes"]
    assert a == {"name": "A", "parameters": {"jsCode": "return 1;"}}
    assert b == {"name": "B", "parameters": {"functionCode": "kept"}}
    assert c == {"name": "C", "parameters": {"expression": "={{ 1 }}"}}


def test_post_processor_registry():
    assert set(POST_PROCESSORS) == {"identity", "relocate_code_fields"}
    doc = {"nodes": []}
    assert get_post_processor("identity")(doc) is doc
    assert apply_post_processor(doc, None) is doc
    with pytest.raises(ConfigError, match="Unknown post-processor"):
        get_post_processor("gemini")
